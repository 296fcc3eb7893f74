"""Identity tagging decisions.

The raw face comparison is delegated to a FaceComparer collaborator that
answers with a similarity percentage in [0, 100] (0 when no face
matches). This module owns the decision: a person is present when the
similarity reaches the threshold, the threshold itself included.
"""

import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path

from config import DEFAULT_CONFIDENCE
from errors import ProviderError
from record import PhotoRecord

logger = logging.getLogger(__name__)


class FaceComparer(ABC):
    """Maps (reference image, candidate image) to a similarity in [0, 100]."""

    def prepare(self, reference: Path) -> None:
        """Optional hook run once per batch before any comparison."""

    @abstractmethod
    def compare(self, reference: Path, candidate: Path) -> float | None:
        """Similarity percentage, or None for "no match"."""


def normalize_similarity(raw: float | None) -> float:
    """Clamp a collaborator answer to [0, 100]; "no match" becomes 0."""
    if raw is None:
        return 0.0
    value = float(raw)
    if math.isnan(value):
        return 0.0
    return min(100.0, max(0.0, value))


def is_match(similarity: float, threshold: float) -> bool:
    return similarity >= threshold


class IdentityMatcher:
    def __init__(self, comparer: FaceComparer, threshold: float = DEFAULT_CONFIDENCE):
        if not 0.0 <= threshold <= 100.0:
            raise ValueError(f"threshold must be within [0, 100], got {threshold}")
        self._comparer = comparer
        self.threshold = threshold
        self.last_similarity: float | None = None

    def prepare(self, reference: Path) -> None:
        self._comparer.prepare(reference)

    def similarity(self, reference: Path, candidate: Path) -> float:
        try:
            raw = self._comparer.compare(reference, candidate)
        except ProviderError:
            raise
        except OSError as exc:
            raise ProviderError("Face comparison failed", str(candidate), exc) from exc
        return normalize_similarity(raw)

    def decide_identity(
        self, reference: Path, candidate: Path, threshold: float | None = None
    ) -> bool:
        """True when the candidate shows the reference person."""
        threshold = self.threshold if threshold is None else threshold
        score = self.similarity(reference, candidate)
        self.last_similarity = score
        logger.debug("Similarity %s vs %s: %.2f (threshold %.2f)", reference, candidate, score, threshold)
        return is_match(score, threshold)

    def tag_person(
        self,
        record: PhotoRecord,
        person: str,
        reference: Path,
        candidate: Path,
        threshold: float | None = None,
    ) -> bool:
        """Add ``person`` to ``record`` when the faces match.

        Returns True only when the record changed. A record that already
        names the person is left alone without calling the comparer.
        """
        self.last_similarity = None
        if record.has_person(person):
            return False
        if not self.decide_identity(reference, candidate, threshold):
            return False
        return record.add_person(person)
