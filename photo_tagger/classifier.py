"""Constrained classification: pick one label from a closed set.

The label generator is asked for exactly one label from the allowed set,
but its answer is never trusted. Anything that does not map onto the set
resolves to "" ("no confident label").
"""

import logging
import re
from typing import Iterable, Sequence

from config import CLASSIFY_PROMPT, NO_LABEL_ANSWER
from errors import ClassificationError, ProviderError, ValidationError
from providers import LabelGenerator

logger = logging.getLogger(__name__)

_WRAPPING = re.compile(r"""^[\s"'`*]+|[\s"'`*.!]+$""")


def parse_labels(raw: str) -> list[str]:
    """Split a comma-separated label list, dropping blanks and repeats."""
    labels: list[str] = []
    for part in raw.split(","):
        label = part.strip()
        if label and label not in labels:
            labels.append(label)
    return labels


def build_prompt(description: str, known_people: Iterable[str], allowed_labels: Sequence[str]) -> str:
    people = ", ".join(sorted(known_people)) or "unknown"
    return CLASSIFY_PROMPT.format(
        description=description,
        people=people,
        labels=", ".join(allowed_labels),
    )


def validate_label(raw: str, allowed_labels: Sequence[str]) -> str:
    """Map a raw answer onto the allowed set.

    The answer as given is tried first, so labels ending in punctuation
    survive. Then exact matches of the cleaned answer win, then
    case-insensitive ones (returned in the allowed spelling). An explicit
    "none" maps to "".

    Raises:
        ValidationError: the answer is not in the allowed set.
    """
    stripped = (raw or "").strip()
    unquoted = stripped.strip("\"'`* \t\n")
    answers = (stripped, unquoted, _WRAPPING.sub("", stripped))
    for answer in answers:
        if answer in allowed_labels:
            return answer
    for answer in answers[1:]:
        folded = answer.casefold()
        for label in allowed_labels:
            if label.casefold() == folded:
                return label
    if answers[-1].casefold() == NO_LABEL_ANSWER:
        return ""
    raise ValidationError(f"Label {raw!r} is not one of {list(allowed_labels)}")


class Classifier:
    def __init__(self, generator: LabelGenerator):
        self._generator = generator

    def classify(
        self,
        description: str,
        known_people: Iterable[str],
        allowed_labels: Sequence[str],
    ) -> str:
        """Return one of ``allowed_labels`` or "".

        Raises:
            ClassificationError: the label generator itself failed.
        """
        if not allowed_labels:
            raise ValueError("allowed_labels must not be empty")
        prompt = build_prompt(description, known_people, allowed_labels)
        try:
            raw = self._generator.complete(prompt)
        except ProviderError as exc:
            raise ClassificationError("Label generation failed", cause=exc) from exc

        try:
            return validate_label(raw, allowed_labels)
        except ValidationError as exc:
            logger.info("Discarding label: %s", exc)
            return ""
