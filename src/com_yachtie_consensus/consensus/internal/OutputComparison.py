"""
Output comparison strategies for consensus clustering.

Model outputs are free text, so "agreement" needs a notion of equivalence.
Each strategy answers one question: are these two outputs the same answer?
The engine treats the comparator as pluggable; any object with an
``equivalent(a, b)`` method can be supplied.
"""

import logging
import re
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional, Protocol, runtime_checkable

import numpy as np

logger = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


class ComparisonStrategy(str, Enum):
    """Strategies for judging two model outputs equivalent."""

    # Equality check x1 = x2
    EXACT = "exact"

    # Case, punctuation and whitespace insensitive equality (default)
    NORMALIZED = "normalized"

    # Jaccard similarity of normalized word sets above a threshold
    TOKEN_OVERLAP = "token_overlap"

    SEMANTIC = "semantic"  # Cosine similarity of embeddings above a threshold
    CUSTOM = "custom"  # Use a custom comparison function


@runtime_checkable
class OutputComparator(Protocol):
    """Anything that can judge two outputs equivalent."""

    def equivalent(self, first: str, second: str) -> bool: ...


def normalize_output(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    lowered = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


class ExactComparator:
    def equivalent(self, first: str, second: str) -> bool:
        return first == second


class NormalizedComparator:
    def equivalent(self, first: str, second: str) -> bool:
        return normalize_output(first) == normalize_output(second)


class TokenOverlapComparator:
    """Jaccard similarity over normalized word sets."""

    def __init__(self, threshold: float = 0.8) -> None:
        self._threshold = threshold

    @staticmethod
    def _tokens(text: str) -> FrozenSet[str]:
        return frozenset(normalize_output(text).split())

    def similarity(self, first: str, second: str) -> float:
        tokens1 = self._tokens(first)
        tokens2 = self._tokens(second)
        if not tokens1 and not tokens2:
            return 1.0
        union = tokens1 | tokens2
        return len(tokens1 & tokens2) / len(union)

    def equivalent(self, first: str, second: str) -> bool:
        return self.similarity(first, second) >= self._threshold


class SemanticComparator:
    """Cosine similarity of text embeddings.

    Embeddings come from ``encode`` (defaults to EncoderCore.encode_single)
    and are cached per comparator instance, so one comparator should live no
    longer than one consensus request.
    """

    def __init__(
        self,
        threshold: float = 0.85,
        encode: Optional[Callable[[str], np.ndarray]] = None,
    ) -> None:
        self._threshold = threshold
        self._encode = encode
        self._cache: Dict[str, np.ndarray] = {}

    def _embedding(self, text: str) -> np.ndarray:
        normalized_text = text.lower().strip()
        if normalized_text not in self._cache:
            if self._encode is None:
                # Import here to avoid loading the embedding model unless semantic comparison is used
                from ...encoder.EncoderCore import EncoderCore

                self._encode = EncoderCore.encode_single
            self._cache[normalized_text] = np.asarray(self._encode(normalized_text), dtype=float).ravel()
        return self._cache[normalized_text]

    def similarity(self, first: str, second: str) -> float:
        vector1 = self._embedding(first)
        vector2 = self._embedding(second)
        norm = float(np.linalg.norm(vector1) * np.linalg.norm(vector2))
        if norm == 0.0:
            return 1.0 if normalize_output(first) == normalize_output(second) else 0.0
        return float(np.dot(vector1, vector2) / norm)

    def equivalent(self, first: str, second: str) -> bool:
        if normalize_output(first) == normalize_output(second):
            return True
        return self.similarity(first, second) >= self._threshold


class CustomComparator:
    def __init__(self, compare: Callable[[str, str], bool]) -> None:
        self._compare = compare

    def equivalent(self, first: str, second: str) -> bool:
        return bool(self._compare(first, second))


def build_comparator(
    strategy: ComparisonStrategy = ComparisonStrategy.NORMALIZED,
    threshold: Optional[float] = None,
    encode: Optional[Callable[[str], np.ndarray]] = None,
    custom_comparator: Optional[Callable[[str, str], bool]] = None,
) -> OutputComparator:
    """
    Create a comparator for the given strategy.

    Args:
        strategy: Comparison strategy to use
        threshold: For TOKEN_OVERLAP and SEMANTIC strategies, similarity threshold
        encode: For SEMANTIC strategy, the embedding function
        custom_comparator: For CUSTOM strategy, the comparison function

    Returns:
        A comparator implementing ``equivalent``
    """
    if strategy == ComparisonStrategy.EXACT:
        return ExactComparator()

    if strategy == ComparisonStrategy.TOKEN_OVERLAP:
        return TokenOverlapComparator(threshold if threshold is not None else 0.8)

    if strategy == ComparisonStrategy.SEMANTIC:
        return SemanticComparator(threshold if threshold is not None else 0.85, encode=encode)

    if strategy == ComparisonStrategy.CUSTOM:
        if custom_comparator is None:
            raise ValueError("CUSTOM comparison requires a custom_comparator")
        return CustomComparator(custom_comparator)

    return NormalizedComparator()
