"""Run one batch action over an ordered list of files.

Files are processed strictly one after another. Any PhotoTaggerError for a
single file becomes a failed Outcome and the batch moves on; only setup
problems (missing reference, unusable output directory, missing
collaborator) abort the run, as SetupError.

    tag-person       compare faces against a reference, add the person
    find-person      list files whose record names the person
    tag-description  describe the image, embed the description
    tag              classify the description into one allowed label
    clear-metadata   reset records to empty
    show-metadata    print records
    find-similar     rank by embedding similarity to a reference file
    find             rank by embedding similarity to a text query
    sort-by-tag      move files into per-tag directories
"""

import logging
from pathlib import Path
from typing import Callable, Sequence

import partition
from actions import (
    Action,
    ClearMetadata,
    Find,
    FindPerson,
    FindSimilar,
    ShowMetadata,
    SortByTag,
    Tag,
    TagDescription,
    TagPerson,
)
from classifier import Classifier
from codec import MetadataCodec
from errors import (
    DimensionMismatchError,
    PhotoTaggerError,
    ProviderError,
    SetupError,
    UnknownActionError,
)
from identity import IdentityMatcher
from providers import DescriptionGenerator, EmbeddingProvider
from ranking import SimilarityCandidate, rank
from record import PhotoRecord
from report import BatchReport, Outcome

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


def _same_file(a: str | Path, b: str | Path) -> bool:
    return Path(a).resolve() == Path(b).resolve()


class Pipeline:
    def __init__(
        self,
        codec: MetadataCodec | None = None,
        describer: DescriptionGenerator | None = None,
        embedder: EmbeddingProvider | None = None,
        classifier: Classifier | None = None,
        matcher: IdentityMatcher | None = None,
        progress_callback: ProgressCallback | None = None,
    ):
        self.codec = codec or MetadataCodec()
        self.describer = describer
        self.embedder = embedder
        self.classifier = classifier
        self.matcher = matcher
        self._progress = progress_callback

    def run(self, action: Action, files: Sequence[str | Path]) -> BatchReport:
        """Apply ``action`` to every file, in order.

        Raises:
            SetupError: the batch cannot start or cannot continue as a whole.
            UnknownActionError: ``action`` is not one of the known variants.
        """
        files = [str(f) for f in files]
        report = BatchReport(getattr(action, "name", type(action).__name__))
        logger.info("Running %s over %d files", report.action, len(files))

        match action:
            case TagPerson():
                self._tag_person(action, files, report)
            case FindPerson():
                self._each(files, report, lambda p: self._find_person(action, p))
            case TagDescription():
                self._need(self.describer, "a description generator")
                self._need(self.embedder, "an embedding provider")
                self._each(files, report, lambda p: self._tag_description(action, p))
            case Tag():
                self._need(self.classifier, "a classifier")
                self._each(files, report, lambda p: self._tag(action, p))
            case ClearMetadata():
                self._each(files, report, self._clear)
            case ShowMetadata():
                self._each(files, report, self._show)
            case FindSimilar():
                self._find_similar(action, files, report)
            case Find():
                self._find(action, files, report)
            case SortByTag():
                self._sort_by_tag(action, files, report)
            case _:
                raise UnknownActionError(report.action)

        logger.info(report.summary())
        return report

    # -- plumbing --

    @staticmethod
    def _need(collaborator, what: str) -> None:
        if collaborator is None:
            raise SetupError(f"This action needs {what}")

    def _each(
        self,
        files: list[str],
        report: BatchReport,
        handle: Callable[[str], Outcome],
    ) -> None:
        total = len(files)
        for count, path in enumerate(files, start=1):
            logger.info("%d / %d: %s", count, total, path)
            if self._progress:
                self._progress(count, total, path)
            report.add(self._guarded(path, handle))

    @staticmethod
    def _guarded(path: str, handle: Callable[[str], Outcome]) -> Outcome:
        try:
            return handle(path)
        except PhotoTaggerError as exc:
            if exc.path is None:
                exc.path = path
            logger.warning("%s", exc)
            return Outcome.failed(path, exc)

    # -- people --

    def _tag_person(self, action: TagPerson, files: list[str], report: BatchReport) -> None:
        self._need(self.matcher, "a face comparer")
        if not action.reference.is_file():
            raise SetupError("Reference file does not exist", str(action.reference))
        try:
            self.matcher.prepare(action.reference)
        except ProviderError as exc:
            raise SetupError("Cannot use reference image", str(action.reference), exc) from exc

        def handle(path: str) -> Outcome:
            record = self.codec.decode(path)
            if record.has_person(action.person):
                return Outcome.skipped(path, f"{action.person} is already tagged")
            changed = self.matcher.tag_person(
                record, action.person, action.reference, Path(path), action.threshold
            )
            similarity = self.matcher.last_similarity or 0.0
            if not changed:
                return Outcome.skipped(
                    path, f"no match ({similarity:.1f} < {action.threshold:.1f})"
                )
            self.codec.encode(path, record)
            return Outcome.ok(path, f"tagged {action.person} ({similarity:.1f})")

        self._each(files, report, handle)

    def _find_person(self, action: FindPerson, path: str) -> Outcome:
        record = self.codec.decode(path)
        if record.has_person(action.person):
            return Outcome.ok(path, f"contains {action.person}")
        return Outcome.skipped(path, f"{action.person} not tagged")

    # -- descriptions and labels --

    def _tag_description(self, action: TagDescription, path: str) -> Outcome:
        record = self.codec.decode(path)
        if record.description and not action.overwrite:
            if record.has_embedding:
                return Outcome.skipped(path, "description already present")
            # Description kept; only the missing embedding is generated
            record.set_embedding(self.embedder.embed(record.description), self.embedder.model_id)
            self.codec.encode(path, record)
            return Outcome.ok(path, "embedded existing description")

        text = self.describer.describe(Path(path), record.description_context(), action.prompt)
        if not text:
            raise ProviderError("Empty description returned", path)
        record.set_description(text)
        try:
            record.set_embedding(self.embedder.embed(text), self.embedder.model_id)
        except ProviderError:
            # Keep the description; the next run fills in the embedding
            self.codec.encode(path, record)
            raise
        self.codec.encode(path, record)
        return Outcome.ok(path, "tagged description")

    def _tag(self, action: Tag, path: str) -> Outcome:
        record = self.codec.decode(path)
        if record.tags and not action.overwrite:
            return Outcome.skipped(path, f"already tagged {record.tags}")
        if not record.description:
            return Outcome.skipped(path, "no description to classify")
        label = self.classifier.classify(record.description, record.people, action.labels)
        if not label:
            return Outcome.skipped(path, "no confident label")
        if not record.add_tag(label):
            return Outcome.skipped(path, f"already has {label}")
        self.codec.encode(path, record)
        return Outcome.ok(path, f"tagged {label}")

    # -- inspection --

    def _clear(self, path: str) -> Outcome:
        self.codec.clear(path)
        return Outcome.ok(path, "cleared metadata")

    def _show(self, path: str) -> Outcome:
        return Outcome.ok(path, self.codec.decode(path).summary())

    # -- ranking --

    def _candidates(
        self,
        files: list[str],
        report: BatchReport,
        query: list[float],
        query_model: str,
        exclude: str | None = None,
    ) -> list[SimilarityCandidate]:
        candidates = []

        def handle(path: str) -> Outcome | None:
            record = self.codec.decode(path)
            if not record.has_embedding:
                return Outcome.skipped(path, "no description embedding")
            if len(record.description_embedding) != len(query):
                raise DimensionMismatchError(len(query), len(record.description_embedding), path)
            if query_model and record.embedding_model and record.embedding_model != query_model:
                logger.warning(
                    "%s was embedded with %s, query with %s", path, record.embedding_model, query_model
                )
            candidates.append(SimilarityCandidate(path, record.description_embedding))
            return None

        for path in files:
            if exclude is not None and _same_file(path, exclude):
                report.add(Outcome.skipped(path, "reference file"))
                continue
            outcome = self._guarded(path, handle)
            if outcome is not None:
                report.add(outcome)
        return candidates

    def _report_ranking(self, ranked, top: int, report: BatchReport) -> None:
        """Top ``top`` items are ok, in rank order; the rest are skipped."""
        for item in ranked[:top]:
            detail = "" if item.comparable else "(not comparable)"
            report.add(Outcome.ok(item.id, detail, score=item.score))
        for item in ranked[top:]:
            report.add(Outcome.skipped(item.id, f"below top {top}"))

    def _find_similar(self, action: FindSimilar, files: list[str], report: BatchReport) -> None:
        try:
            reference = self.codec.decode(action.reference)
        except PhotoTaggerError as exc:
            raise SetupError("Cannot read reference file", str(action.reference), exc) from exc
        if not reference.has_embedding:
            raise SetupError("Reference file has no description embedding", str(action.reference))

        candidates = self._candidates(
            files,
            report,
            reference.description_embedding,
            reference.embedding_model,
            exclude=str(action.reference),
        )
        self._report_ranking(rank(reference.description_embedding, candidates), action.top, report)

    def _find(self, action: Find, files: list[str], report: BatchReport) -> None:
        self._need(self.embedder, "an embedding provider")
        try:
            query = self.embedder.embed(action.query)
        except ProviderError as exc:
            raise SetupError("Cannot embed query", cause=exc) from exc

        candidates = self._candidates(files, report, query, self.embedder.model_id)
        self._report_ranking(rank(query, candidates), action.top, report)

    # -- partitioning --

    def _sort_by_tag(self, action: SortByTag, files: list[str], report: BatchReport) -> None:
        records: list[tuple[str, PhotoRecord]] = []

        def handle(path: str) -> Outcome | None:
            records.append((path, self.codec.decode(path)))
            return None

        for path in files:
            outcome = self._guarded(path, handle)
            if outcome is not None:
                report.add(outcome)

        placement = partition.plan(records)
        logger.info("Sorting %d files into %d tag directories", len(records), len(placement.tags))
        report.extend(partition.execute(placement, action.output))
