"""Batch actions as a closed set of validated argument structs.

parse_action() turns an action name plus loose keyword arguments (as they
come from the CLI or an MCP tool call) into one of the variants below,
validating what that action needs. The Pipeline dispatches on the variant
type, never on the name.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from classifier import parse_labels
from config import DEFAULT_CONFIDENCE, DEFAULT_TOP
from errors import UnknownActionError


def _require(value: str, flag: str, action: str) -> str:
    if not value or not str(value).strip():
        raise ValueError(f"{action} requires {flag}")
    return str(value).strip()


def _check_top(top: int) -> int:
    if top < 0:
        raise ValueError(f"result limit must be non-negative, got {top}")
    return top


@dataclass(frozen=True)
class TagPerson:
    name = "tag-person"
    person: str
    reference: Path
    threshold: float = DEFAULT_CONFIDENCE

    def __post_init__(self):
        _require(self.person, "a person name", self.name)
        if not 0.0 <= self.threshold <= 100.0:
            raise ValueError(f"confidence must be within [0, 100], got {self.threshold}")


@dataclass(frozen=True)
class FindPerson:
    name = "find-person"
    person: str

    def __post_init__(self):
        _require(self.person, "a person name", self.name)


@dataclass(frozen=True)
class TagDescription:
    name = "tag-description"
    overwrite: bool = False
    prompt: str = ""


@dataclass(frozen=True)
class Tag:
    name = "tag"
    labels: tuple[str, ...] = field(default_factory=tuple)
    overwrite: bool = False

    def __post_init__(self):
        if not self.labels:
            raise ValueError(f"{self.name} requires at least one label")


@dataclass(frozen=True)
class ClearMetadata:
    name = "clear-metadata"


@dataclass(frozen=True)
class ShowMetadata:
    name = "show-metadata"


@dataclass(frozen=True)
class FindSimilar:
    name = "find-similar"
    reference: Path
    top: int = DEFAULT_TOP

    def __post_init__(self):
        _check_top(self.top)


@dataclass(frozen=True)
class Find:
    name = "find"
    query: str
    top: int = DEFAULT_TOP

    def __post_init__(self):
        _require(self.query, "a query", self.name)
        _check_top(self.top)


@dataclass(frozen=True)
class SortByTag:
    name = "sort-by-tag"
    output: Path


Action = Union[
    TagPerson,
    FindPerson,
    TagDescription,
    Tag,
    ClearMetadata,
    ShowMetadata,
    FindSimilar,
    Find,
    SortByTag,
]

ACTION_TYPES = (
    TagPerson,
    FindPerson,
    TagDescription,
    Tag,
    ClearMetadata,
    ShowMetadata,
    FindSimilar,
    Find,
    SortByTag,
)

ACTION_NAMES = [cls.name for cls in ACTION_TYPES]


def parse_action(
    action: str,
    person: str = "",
    reference: str = "",
    confidence: float = DEFAULT_CONFIDENCE,
    overwrite: bool = False,
    tags: str = "",
    prompt: str = "",
    query: str = "",
    top: int = DEFAULT_TOP,
    output: str = "",
) -> Action:
    """Build the action variant for ``action``.

    Raises:
        UnknownActionError: ``action`` names no known action.
        ValueError: a required argument is missing or out of range.
    """
    if action == TagPerson.name:
        return TagPerson(person, Path(_require(reference, "a reference file", action)), confidence)
    if action == FindPerson.name:
        return FindPerson(person)
    if action == TagDescription.name:
        return TagDescription(overwrite=overwrite, prompt=prompt)
    if action == Tag.name:
        return Tag(tuple(parse_labels(tags)), overwrite=overwrite)
    if action == ClearMetadata.name:
        return ClearMetadata()
    if action == ShowMetadata.name:
        return ShowMetadata()
    if action == FindSimilar.name:
        return FindSimilar(Path(_require(reference, "a reference file", action)), top)
    if action == Find.name:
        return Find(query or prompt, top)
    if action == SortByTag.name:
        return SortByTag(Path(_require(output, "an output directory", action)))
    raise UnknownActionError(action)
