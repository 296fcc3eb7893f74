"""Per-file outcomes and their aggregation for one batch."""

from dataclasses import dataclass, field
from enum import Enum

from errors import ErrorKind, PhotoTaggerError


class Status(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class Outcome:
    path: str
    status: Status
    detail: str = ""
    error: PhotoTaggerError | None = None
    score: float | None = None

    @classmethod
    def ok(cls, path: str, detail: str = "", score: float | None = None) -> "Outcome":
        return cls(str(path), Status.OK, detail, score=score)

    @classmethod
    def skipped(cls, path: str, detail: str) -> "Outcome":
        return cls(str(path), Status.SKIPPED, detail)

    @classmethod
    def failed(cls, path: str, error: PhotoTaggerError) -> "Outcome":
        return cls(str(path), Status.FAILED, str(error), error=error)

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None

    def line(self) -> str:
        if self.status is Status.FAILED:
            return f"FAILED {self.path}: {self.detail}"
        if self.status is Status.SKIPPED:
            return f"skipped {self.path}: {self.detail}"
        if self.score is not None:
            return f"{self.score:.4f} {self.path}" + (f" {self.detail}" if self.detail else "")
        return f"{self.path}: {self.detail}" if self.detail else self.path


@dataclass
class BatchReport:
    action: str
    outcomes: list[Outcome] = field(default_factory=list)

    def add(self, outcome: Outcome) -> Outcome:
        self.outcomes.append(outcome)
        return outcome

    def extend(self, outcomes) -> None:
        self.outcomes.extend(outcomes)

    def _with(self, status: Status) -> list[Outcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def ok(self) -> list[Outcome]:
        return self._with(Status.OK)

    @property
    def skipped(self) -> list[Outcome]:
        return self._with(Status.SKIPPED)

    @property
    def failed(self) -> list[Outcome]:
        return self._with(Status.FAILED)

    def lines(self) -> list[str]:
        return [o.line() for o in self.outcomes]

    def summary(self) -> str:
        return (
            f"{self.action}: {len(self.ok)} ok, "
            f"{len(self.skipped)} skipped, {len(self.failed)} failed"
        )
