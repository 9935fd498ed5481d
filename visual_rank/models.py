"""
Record and result types for the ranking pipeline.

Stored records (ImageRecord, VisualMetadata, OCRResult) are frozen
dataclasses so a search can read them from any thread without copying.
ScoredRecord is produced per search and never written back to the store.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

Color = Tuple[int, int, int]


@dataclass(frozen=True)
class VisualMetadata:
    """Visual property summary derived once from an image's pixels."""
    dominant_colors: Tuple[Color, ...] = ()
    brightness: Optional[float] = None
    contrast: Optional[float] = None
    color_entropy: Optional[float] = None
    edge_density: Optional[float] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["dominant_colors"] = [list(c) for c in self.dominant_colors]
        return data


@dataclass(frozen=True)
class OCRWord:
    text: str
    confidence: float


@dataclass(frozen=True)
class OCRResult:
    """Text recognized in an image, with per-word confidence in [0, 1]."""
    text: str = ""
    confidence: float = 0.0
    words: Tuple[OCRWord, ...] = ()

    @classmethod
    def empty(cls) -> "OCRResult":
        return cls()

    @classmethod
    def from_words(cls, words: Sequence[Tuple[str, float]],
                   text: Optional[str] = None,
                   confidence: Optional[float] = None) -> "OCRResult":
        """Build a result from (text, confidence) pairs."""
        items = tuple(OCRWord(w, float(c)) for w, c in words)
        if text is None:
            text = " ".join(w.text for w in items)
        if confidence is None:
            confidence = (sum(w.confidence for w in items) / len(items)
                          if items else 0.0)
        return cls(text=text, confidence=float(confidence), words=items)

    @property
    def is_empty(self) -> bool:
        return not self.text or not self.words

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "confidence": self.confidence,
            "words": [{"text": w.text, "confidence": w.confidence}
                      for w in self.words],
        }


@dataclass(frozen=True, eq=False)
class ImageRecord:
    """
    A stored image: its feature vector plus optional derived signals.

    The vector is converted to a read-only float64 array on construction.
    """
    id: str
    vector: np.ndarray
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat())
    metadata: Optional[VisualMetadata] = None
    text: Optional[OCRResult] = None

    def __post_init__(self):
        vector = np.array(self.vector, dtype=np.float64).ravel()
        vector.setflags(write=False)
        object.__setattr__(self, "vector", vector)


@dataclass(frozen=True)
class ComponentScores:
    cosine: float
    euclidean: float
    manhattan: float
    color: float
    visual_props: float
    text: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class Characteristics:
    is_text_heavy: bool = False
    is_colorful: bool = False
    is_high_contrast: bool = False
    is_detailed: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


@dataclass(frozen=True)
class ScoredRecord:
    """An ImageRecord paired with its fused similarity for one search."""
    record: ImageRecord
    similarity: float
    metrics: ComponentScores
    has_significant_text: bool
    characteristics: Characteristics

    @property
    def id(self) -> str:
        return self.record.id

    def to_dict(self) -> dict:
        record = self.record
        return {
            "id": record.id,
            "timestamp": record.timestamp,
            "similarity": self.similarity,
            "metrics": self.metrics.to_dict(),
            "has_significant_text": self.has_significant_text,
            "characteristics": self.characteristics.to_dict(),
            "metadata": record.metadata.to_dict() if record.metadata else None,
            "text": record.text.to_dict() if record.text else None,
        }
