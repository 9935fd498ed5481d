"""
Similarity between the OCR output of two images.

Three signals are blended:
    - weighted Jaccard over word frequency maps (confidence, count and
      word importance all scale a word's contribution)
    - a phrase bonus for shared runs of 2 to 6 consecutive words
    - fuzzy credit for near-identical words, which catches OCR misreads
      such as "recieve" vs "receive"

OCR output for a single image is short, so the fuzzy pass compares every
word pair directly. Do not feed it unbounded documents.
"""

import re
import logging
from typing import Dict, List, NamedTuple, Optional

from rapidfuzz.distance import Levenshtein

from .models import OCRResult

logger = logging.getLogger(__name__)

JACCARD_WEIGHT = 0.5
PHRASE_WEIGHT = 0.3
FUZZY_WEIGHT = 0.2

MIN_WORD_LENGTH = 2
MIN_FUZZY_LENGTH = 4
FUZZY_MIN_SIMILARITY = 0.75
MAX_PHRASE_LENGTH = 6
PHRASE_STEP = 0.1

STOP_WORD_FACTOR = 0.3
SPECIAL_FACTOR = 1.2

ALLOWED_PUNCTUATION = ".,;:!?@#$%&*()-_+=[]{}|<>/\\'\"`"

STOP_WORDS = frozenset({
    "the", "and", "a", "an", "in", "on", "at", "to", "for", "of", "with",
    "by", "as", "is", "are", "was", "were", "be", "been", "being", "have",
    "has", "had", "do", "does", "did", "but", "or", "if", "then", "else",
    "when", "up", "down", "out", "that", "this", "these", "those",
})

_DISALLOWED = re.compile(r"[^\w\s" + re.escape(ALLOWED_PUNCTUATION) + r"]", re.ASCII)
_WHITESPACE = re.compile(r"\s+")
_SPECIAL = re.compile(r"[\d" + re.escape(ALLOWED_PUNCTUATION) + r"]")

# Common OCR confusions: a misread glyph directly before the letter it
# was mistaken for collapses into that letter.
OCR_SUBSTITUTIONS = (
    (re.compile(r"\|l"), "l"),
    (re.compile(r"0o"), "o"),
    (re.compile(r"1l"), "l"),
    (re.compile(r"5s"), "s"),
    (re.compile(r"8b"), "b"),
)


class WordInfo(NamedTuple):
    confidence: float
    count: int


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, collapse whitespace, strip stray symbols, undo OCR confusions."""
    if not text:
        return ""
    text = _DISALLOWED.sub("", text.lower())
    text = _WHITESPACE.sub(" ", text).strip()
    for pattern, replacement in OCR_SUBSTITUTIONS:
        text = pattern.sub(replacement, text)
    return text


def word_importance(word: str) -> float:
    """
    Relative weight of a word in the similarity sums.

    Short words and stop words count less; words with digits or
    punctuation (part numbers, prices, codes) count more.
    """
    length_factor = min(1.0, len(word) / 5)
    content_factor = STOP_WORD_FACTOR if word in STOP_WORDS else 1.0
    special_factor = SPECIAL_FACTOR if _SPECIAL.search(word) else 1.0
    return length_factor * content_factor * special_factor


def build_word_map(result: OCRResult) -> Dict[str, WordInfo]:
    """Map each normalized word to its highest confidence and occurrence count."""
    words: Dict[str, WordInfo] = {}
    for item in result.words:
        word = normalize_text(item.text)
        if len(word) < MIN_WORD_LENGTH:
            continue
        existing = words.get(word)
        if existing:
            words[word] = WordInfo(max(existing.confidence, item.confidence),
                                   existing.count + 1)
        else:
            words[word] = WordInfo(item.confidence, 1)
    return words


def weighted_jaccard(words_a: Dict[str, WordInfo],
                     words_b: Dict[str, WordInfo]) -> float:
    intersection = 0.0
    union = 0.0

    for word, info_a in words_a.items():
        importance = word_importance(word)
        union += info_a.confidence * info_a.count * importance
        info_b = words_b.get(word)
        if info_b:
            intersection += (info_a.confidence * info_b.confidence
                             * min(info_a.count, info_b.count) * importance)

    for word, info_b in words_b.items():
        if word not in words_a:
            union += info_b.confidence * info_b.count * word_importance(word)

    return intersection / union if union > 0 else 0.0


def _ngrams(tokens: List[str], n: int):
    return (" ".join(tokens[i:i + n]) for i in range(len(tokens) - n + 1))


def phrase_match_score(text_a: str, text_b: str) -> float:
    """
    Reward runs of consecutive words shared by both texts.

    Every shared n-gram (2 <= n <= 6) adds 0.1 * n, and the longest shared
    n-gram adds a further 0.1 * n. The total is capped at 1.0.
    """
    tokens_a = normalize_text(text_a).split()
    tokens_b = normalize_text(text_b).split()
    if len(tokens_a) < 2 or len(tokens_b) < 2:
        return 0.0

    longest = 0
    matches = 0
    score = 0.0
    upper = min(MAX_PHRASE_LENGTH, len(tokens_a), len(tokens_b))

    for n in range(2, upper + 1):
        phrases_a = set(_ngrams(tokens_a, n))
        for phrase in _ngrams(tokens_b, n):
            if phrase in phrases_a:
                matches += 1
                longest = max(longest, n)
                score += n * PHRASE_STEP

    if not matches:
        return 0.0
    return min(1.0, score + longest * PHRASE_STEP)


def fuzzy_match_score(words_a: Dict[str, WordInfo],
                      words_b: Dict[str, WordInfo]) -> float:
    """
    Credit near-miss words that exact matching ignores.

    Pairs of distinct words, both at least four characters, whose
    normalized Levenshtein similarity exceeds 0.75 contribute
    similarity * confA * confB * importance(wordA). The sum is divided by
    the number of distinct words in A and capped at 1.0.
    """
    total = 0.0
    for word_a, info_a in words_a.items():
        if len(word_a) < MIN_FUZZY_LENGTH:
            continue
        for word_b, info_b in words_b.items():
            if len(word_b) < MIN_FUZZY_LENGTH or word_a == word_b:
                continue
            distance = Levenshtein.distance(word_a, word_b)
            similarity = 1.0 - distance / max(len(word_a), len(word_b))
            if similarity > FUZZY_MIN_SIMILARITY:
                total += (similarity * info_a.confidence * info_b.confidence
                          * word_importance(word_a))

    return min(1.0, total / max(1, len(words_a)))


def text_similarity(text_a: Optional[OCRResult], text_b: Optional[OCRResult]) -> float:
    """
    Blend Jaccard, phrase and fuzzy signals into a single score.

    Args:
        text_a: OCR output of the query image.
        text_b: OCR output of the candidate image.

    Returns:
        0.5 * jaccard + 0.3 * phrase + 0.2 * fuzzy, or 0.0 when either
        side has no text or no words.
    """
    if text_a is None or text_b is None or text_a.is_empty or text_b.is_empty:
        return 0.0

    words_a = build_word_map(text_a)
    words_b = build_word_map(text_b)

    jaccard = weighted_jaccard(words_a, words_b)
    phrase = phrase_match_score(text_a.text, text_b.text)
    fuzzy = fuzzy_match_score(words_a, words_b)

    logger.debug(f"Text similarity: jaccard={jaccard:.3f} phrase={phrase:.3f} fuzzy={fuzzy:.3f}")

    return JACCARD_WEIGHT * jaccard + PHRASE_WEIGHT * phrase + FUZZY_WEIGHT * fuzzy
