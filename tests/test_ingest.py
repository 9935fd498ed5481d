"""Tests for building records from images."""

import json

import cv2
import numpy as np
import pytest

from visual_rank import ingest
from visual_rank.ingest import build_record, ingest_directory
from visual_rank.store import RecordStore


def mean_color_embed(image):
    """Tiny stand-in embedder: unit vector of the mean RGB color."""
    v = image.reshape(-1, 3).mean(axis=0) + 1.0
    return v / np.linalg.norm(v)


class StubOCR:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def read(self, image):
        self.calls += 1
        return self.result


@pytest.fixture
def image_dir(tmp_path, red_square_image, blue_circle_image):
    cv2.imwrite(str(tmp_path / "red.png"), red_square_image)
    cv2.imwrite(str(tmp_path / "blue.jpg"), blue_circle_image)
    (tmp_path / "notes.txt").write_text("not an image")
    (tmp_path / "broken.png").write_bytes(b"not really a png")
    return tmp_path


class TestBuildRecord:
    """Tests for single-image record construction."""

    def test_builds_all_signals(self, red_square_image, hello_world):
        ocr = StubOCR(hello_world)
        record = build_record("red", red_square_image, mean_color_embed, ocr=ocr)
        assert record.id == "red"
        assert record.vector.shape == (3,)
        assert np.linalg.norm(record.vector) == pytest.approx(1.0)
        assert record.metadata is not None
        assert record.metadata.dominant_colors
        assert record.text is hello_world
        assert ocr.calls == 1

    def test_without_ocr(self, red_square_image):
        record = build_record("red", red_square_image, mean_color_embed)
        assert record.text is None

    def test_timestamp(self, red_square_image):
        record = build_record("red", red_square_image, mean_color_embed,
                              timestamp="2024-01-01T00:00:00+00:00")
        assert record.timestamp == "2024-01-01T00:00:00+00:00"

    def test_metadata_failure_leaves_metadata_missing(self, monkeypatch, red_square_image):
        def broken(image):
            raise ValueError("bad pixels")

        monkeypatch.setattr(ingest, "extract_visual_metadata", broken)
        record = build_record("red", red_square_image, mean_color_embed)
        assert record.metadata is None

    def test_embed_failure_propagates(self, red_square_image):
        def broken(image):
            raise ValueError("model not loaded")

        with pytest.raises(ValueError, match="model not loaded"):
            build_record("red", red_square_image, broken)


class TestIngestDirectory:
    """Tests for directory ingestion."""

    def test_ingests_images(self, image_dir):
        store = RecordStore()
        stats = ingest_directory(str(image_dir), mean_color_embed, store)
        assert stats == {"success": True, "processed": 2, "skipped": 0, "errors": 1}
        assert "red.png" in store
        assert "blue.jpg" in store
        assert "notes.txt" not in store

    def test_duplicates_skipped(self, image_dir):
        store = RecordStore()
        ingest_directory(str(image_dir), mean_color_embed, store)
        stats = ingest_directory(str(image_dir), mean_color_embed, store)
        assert stats["processed"] == 0
        assert stats["skipped"] == 2
        assert stats["success"] is False

    def test_metadata_file(self, image_dir):
        listing = image_dir / "listing.json"
        listing.write_text(json.dumps([
            {"filename": "red.png"}, {"filename": "missing.png"}, {"title": "no file"},
        ]))
        store = RecordStore()
        stats = ingest_directory(str(image_dir), mean_color_embed, store,
                                 metadata_path=str(listing))
        assert stats["processed"] == 1
        assert stats["skipped"] == 1
        assert [r.id for r in store.get_all()] == ["red.png"]

    def test_embed_errors_counted(self, image_dir):
        def broken(image):
            raise ValueError("model not loaded")

        stats = ingest_directory(str(image_dir), broken, RecordStore())
        assert stats["errors"] == 3
        assert stats["success"] is False

    def test_ocr_used(self, image_dir, hello_world):
        ocr = StubOCR(hello_world)
        store = RecordStore()
        ingest_directory(str(image_dir), mean_color_embed, store, ocr=ocr)
        assert ocr.calls == 2
        assert store.get("red.png").text is hello_world
