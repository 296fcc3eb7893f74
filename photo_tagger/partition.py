"""Sort photos into one directory per tag.

plan() looks at every record once and decides where each file goes: into
the directory of its first tag, or nowhere when it has no tags.
execute() creates every tag directory, then moves files one by one; a
failed move is reported and the rest carry on.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from errors import MoveError, SetupError
from record import PhotoRecord
from report import Outcome

logger = logging.getLogger(__name__)


def tag_directory_name(tag: str) -> str:
    """Directory name for a tag; separators are replaced so it stays one level deep."""
    name = tag.strip().replace("/", "_").replace("\\", "_")
    if name in ("", ".", ".."):
        name = name.replace(".", "_") or "_"
    return name


@dataclass
class TagPlacementPlan:
    tags: list[str] = field(default_factory=list)  # order of first appearance
    assignments: list[tuple[str, str | None]] = field(default_factory=list)  # (file, tag) in input order

    def directory_for(self, tag: str) -> str:
        return tag_directory_name(tag)

    @property
    def placements(self) -> dict[str, list[str]]:
        """{tag: files to move there}, tags in discovery order."""
        out: dict[str, list[str]] = {tag: [] for tag in self.tags}
        for path, tag in self.assignments:
            if tag is not None:
                out[tag].append(path)
        return out

    @property
    def skipped(self) -> list[str]:
        return [path for path, tag in self.assignments if tag is None]


def plan(records: Sequence[tuple[str, PhotoRecord]]) -> TagPlacementPlan:
    result = TagPlacementPlan()
    seen: set[str] = set()
    for path, record in records:
        for tag in record.tags:
            if tag not in seen:
                seen.add(tag)
                result.tags.append(tag)
        result.assignments.append((str(path), record.tags[0] if record.tags else None))
    return result


def _prepare_directories(plan: TagPlacementPlan, output_root: Path) -> dict[str, Path]:
    try:
        output_root.mkdir(parents=True, exist_ok=True)
        dirs = {}
        for tag in plan.tags:
            target = output_root / plan.directory_for(tag)
            target.mkdir(exist_ok=True)
            dirs[tag] = target
        return dirs
    except OSError as exc:
        raise SetupError("Cannot prepare output directory", str(output_root), exc) from exc


def move_file(source: Path, directory: Path) -> Path:
    """Move ``source`` into ``directory`` without overwriting anything there."""
    destination = directory / source.name
    try:
        if destination.exists():
            raise FileExistsError(f"{destination} already exists")
        shutil.move(str(source), str(destination))
    except OSError as exc:
        raise MoveError(str(source), str(destination), exc) from exc
    return destination


def execute(plan: TagPlacementPlan, output_root: str | Path) -> list[Outcome]:
    """Create the tag directories and move every placed file.

    Raises:
        SetupError: the output directory tree could not be created.
    """
    dirs = _prepare_directories(plan, Path(output_root))
    outcomes = []
    for path, tag in plan.assignments:
        if tag is None:
            outcomes.append(Outcome.skipped(path, "no tags"))
            continue
        if Path(path).resolve().parent == dirs[tag].resolve():
            outcomes.append(Outcome.skipped(path, "already in place"))
            continue
        try:
            destination = move_file(Path(path), dirs[tag])
        except MoveError as exc:
            logger.warning("%s", exc)
            outcomes.append(Outcome.failed(path, exc))
            continue
        outcomes.append(Outcome.ok(path, f"moved to {destination}"))
    return outcomes
