import copy
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from actions import (
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
    CodecError,
    ErrorKind,
    NotFoundError,
    ProviderError,
    SetupError,
    UnknownActionError,
)
from identity import IdentityMatcher
from pipeline import Pipeline
from record import PhotoRecord
from report import Status


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeCodec:
    """In-memory codec. Paths not in ``store`` are missing files."""

    def __init__(self, store: dict[str, PhotoRecord | Exception]):
        self.store = store
        self.encoded: list[str] = []

    def decode(self, path):
        path = str(path)
        if path not in self.store:
            raise NotFoundError("File does not exist", path)
        value = self.store[path]
        if isinstance(value, Exception):
            raise value
        return copy.deepcopy(value)

    def encode(self, path, record):
        self.encoded.append(str(path))
        self.store[str(path)] = copy.deepcopy(record)

    def clear(self, path):
        if str(path) not in self.store:
            raise NotFoundError("File does not exist", str(path))
        self.encode(path, PhotoRecord())
        return PhotoRecord()


def _make_photos(folder: Path, count: int = 3) -> list[Path]:
    paths = []
    for i in range(count):
        img = Image.new("RGB", (100, 100), color=(i * 50, 100, 200))
        p = folder / f"photo_{i}.jpg"
        img.save(p)
        paths.append(p)
    return paths


def _embedder(vectors: dict[str, list[float]] | None = None, default=(1.0, 0.0)):
    emb = MagicMock()
    emb.model_id = "mock:embed"
    emb.embed.side_effect = lambda text: list((vectors or {}).get(text, default))
    return emb


def _describer(text: str = "A dog on a beach"):
    desc = MagicMock()
    desc.describe.return_value = text
    return desc


def _comparer(scores: dict[str, float]):
    comparer = MagicMock()
    comparer.compare.side_effect = lambda ref, cand: scores[Path(cand).name]
    return comparer


# ---------------------------------------------------------------------------
# tag-person
# ---------------------------------------------------------------------------


def test_tag_person_end_to_end_threshold(tmp_path):
    ref, cand_a, cand_b = _make_photos(tmp_path, 3)
    comparer = _comparer({cand_a.name: 90.0, cand_b.name: 50.0})
    pipeline = Pipeline(matcher=IdentityMatcher(comparer))

    report = pipeline.run(TagPerson("Ann", ref, 85.0), [cand_a, cand_b])

    codec = MetadataCodec()
    assert codec.decode(cand_a).people == ["Ann"]
    assert codec.decode(cand_b) == PhotoRecord()
    assert [o.status for o in report.outcomes] == [Status.OK, Status.SKIPPED]
    comparer.prepare.assert_called_once_with(ref)


def test_tag_person_idempotent_no_collaborator_call(tmp_path):
    codec = FakeCodec({"a.jpg": PhotoRecord(people=["Ann"])})
    comparer = _comparer({"a.jpg": 99.0})
    ref = tmp_path / "ref.jpg"
    ref.write_bytes(b"x")

    report = Pipeline(codec=codec, matcher=IdentityMatcher(comparer)).run(
        TagPerson("Ann", ref), ["a.jpg"]
    )

    comparer.compare.assert_not_called()
    assert codec.encoded == []
    assert report.outcomes[0].status is Status.SKIPPED


def test_tag_person_missing_reference_is_fatal(tmp_path):
    pipeline = Pipeline(codec=FakeCodec({}), matcher=IdentityMatcher(_comparer({})))
    with pytest.raises(SetupError):
        pipeline.run(TagPerson("Ann", tmp_path / "missing.jpg"), ["a.jpg"])


def test_tag_person_unusable_reference_is_fatal(tmp_path):
    ref = tmp_path / "ref.jpg"
    ref.write_bytes(b"x")
    comparer = _comparer({})
    comparer.prepare.side_effect = ProviderError("No face found in reference image")
    with pytest.raises(SetupError):
        Pipeline(codec=FakeCodec({}), matcher=IdentityMatcher(comparer)).run(
            TagPerson("Ann", ref), ["a.jpg"]
        )


def test_tag_person_failures_are_isolated(tmp_path):
    ref = tmp_path / "ref.jpg"
    ref.write_bytes(b"x")
    codec = FakeCodec({"bad.jpg": CodecError("corrupt", "bad.jpg"), "err.jpg": PhotoRecord(), "ok.jpg": PhotoRecord()})

    def compare(ref_path, cand):
        if Path(cand).name == "err.jpg":
            raise ProviderError("service down")
        return 95.0

    comparer = MagicMock()
    comparer.compare.side_effect = compare
    report = Pipeline(codec=codec, matcher=IdentityMatcher(comparer)).run(
        TagPerson("Ann", ref), ["missing.jpg", "bad.jpg", "err.jpg", "ok.jpg"]
    )

    kinds = [o.error_kind for o in report.outcomes]
    assert kinds == [ErrorKind.NOT_FOUND, ErrorKind.CODEC, ErrorKind.PROVIDER, None]
    assert report.outcomes[3].status is Status.OK
    assert codec.store["ok.jpg"].people == ["Ann"]
    assert len(report.outcomes) == 4


def test_tag_person_requires_matcher(tmp_path):
    with pytest.raises(SetupError):
        Pipeline(codec=FakeCodec({})).run(TagPerson("Ann", tmp_path / "r.jpg"), [])


# ---------------------------------------------------------------------------
# find-person
# ---------------------------------------------------------------------------


def test_find_person():
    codec = FakeCodec({"a": PhotoRecord(people=["Ann"]), "b": PhotoRecord(people=["ann"])})
    report = Pipeline(codec=codec).run(FindPerson("Ann"), ["a", "b"])
    assert [o.path for o in report.ok] == ["a"]
    assert [o.path for o in report.skipped] == ["b"]


# ---------------------------------------------------------------------------
# tag-description
# ---------------------------------------------------------------------------


def test_tag_description_stores_description_and_embedding():
    codec = FakeCodec({"a": PhotoRecord(people=["Ann"])})
    describer = _describer("Ann on a beach")
    embedder = _embedder({"Ann on a beach": [0.1, 0.2, 0.3]})

    report = Pipeline(codec=codec, describer=describer, embedder=embedder).run(
        TagDescription(prompt="Be brief."), ["a"]
    )

    rec = codec.store["a"]
    assert rec.description == "Ann on a beach"
    assert rec.description_embedding == [0.1, 0.2, 0.3]
    assert rec.embedding_model == "mock:embed"
    assert rec.people == ["Ann"]
    assert codec.encoded == ["a"]
    assert report.outcomes[0].status is Status.OK
    path, context, prompt = describer.describe.call_args.args
    assert '"Ann"' in context
    assert prompt == "Be brief."


def test_tag_description_skips_existing_without_overwrite():
    existing = PhotoRecord(description="old", description_embedding=[1.0], embedding_model="m")
    codec = FakeCodec({"a": existing})
    describer = _describer()
    report = Pipeline(codec=codec, describer=describer, embedder=_embedder()).run(TagDescription(), ["a"])
    describer.describe.assert_not_called()
    assert codec.encoded == []
    assert report.outcomes[0].status is Status.SKIPPED


def test_tag_description_overwrite_regenerates():
    codec = FakeCodec({"a": PhotoRecord(description="old", description_embedding=[1.0, 0.0])})
    Pipeline(codec=codec, describer=_describer("new"), embedder=_embedder()).run(
        TagDescription(overwrite=True), ["a"]
    )
    assert codec.store["a"].description == "new"


def test_tag_description_fills_missing_embedding_only():
    codec = FakeCodec({"a": PhotoRecord(description="kept")})
    describer = _describer()
    Pipeline(codec=codec, describer=describer, embedder=_embedder()).run(TagDescription(), ["a"])
    describer.describe.assert_not_called()
    assert codec.store["a"].description == "kept"
    assert codec.store["a"].description_embedding == [1.0, 0.0]


def test_tag_description_embedding_failure_keeps_description():
    codec = FakeCodec({"a": PhotoRecord(), "b": PhotoRecord()})
    embedder = MagicMock()
    embedder.model_id = "m"
    embedder.embed.side_effect = [ProviderError("embed down"), [0.5, 0.5]]

    report = Pipeline(codec=codec, describer=_describer("text"), embedder=embedder).run(
        TagDescription(), ["a", "b"]
    )

    assert report.outcomes[0].status is Status.FAILED
    assert codec.store["a"].description == "text"
    assert codec.store["a"].description_embedding == []
    assert report.outcomes[1].status is Status.OK


def test_tag_description_empty_answer_is_failure():
    codec = FakeCodec({"a": PhotoRecord()})
    report = Pipeline(codec=codec, describer=_describer(""), embedder=_embedder()).run(TagDescription(), ["a"])
    assert report.outcomes[0].error_kind is ErrorKind.PROVIDER
    assert codec.encoded == []


def test_tag_description_requires_collaborators():
    with pytest.raises(SetupError):
        Pipeline(codec=FakeCodec({}), describer=_describer()).run(TagDescription(), ["a"])


# ---------------------------------------------------------------------------
# tag
# ---------------------------------------------------------------------------


def _classifier(answer):
    gen = MagicMock()
    gen.complete.return_value = answer
    return Classifier(gen)


def test_tag_appends_validated_label():
    codec = FakeCodec({"a": PhotoRecord(description="waves and sand", tags=["old"])})
    report = Pipeline(codec=codec, classifier=_classifier("beach")).run(
        Tag(("beach", "city"), overwrite=True), ["a"]
    )
    assert codec.store["a"].tags == ["old", "beach"]
    assert report.outcomes[0].status is Status.OK


def test_tag_invalid_label_assigns_nothing():
    codec = FakeCodec({"a": PhotoRecord(description="d")})
    report = Pipeline(codec=codec, classifier=_classifier("mountain")).run(Tag(("beach", "city")), ["a"])
    assert codec.store["a"].tags == []
    assert codec.encoded == []
    assert report.outcomes[0].status is Status.SKIPPED
    assert report.outcomes[0].error is None


def test_tag_skips_tagged_and_undescribed():
    codec = FakeCodec({"t": PhotoRecord(description="d", tags=["x"]), "u": PhotoRecord()})
    clf_gen = MagicMock()
    report = Pipeline(codec=codec, classifier=Classifier(clf_gen)).run(Tag(("x", "y")), ["t", "u"])
    clf_gen.complete.assert_not_called()
    assert [o.status for o in report.outcomes] == [Status.SKIPPED, Status.SKIPPED]


def test_tag_repeated_label_not_duplicated():
    codec = FakeCodec({"a": PhotoRecord(description="d", tags=["beach"])})
    Pipeline(codec=codec, classifier=_classifier("beach")).run(Tag(("beach",), overwrite=True), ["a"])
    assert codec.store["a"].tags == ["beach"]
    assert codec.encoded == []


def test_tag_classifier_failure_is_reported():
    gen = MagicMock()
    gen.complete.side_effect = ProviderError("timeout")
    codec = FakeCodec({"a": PhotoRecord(description="d"), "b": PhotoRecord(description="d")})
    report = Pipeline(codec=codec, classifier=Classifier(gen)).run(Tag(("x",)), ["a", "b"])
    assert [o.error_kind for o in report.outcomes] == [ErrorKind.CLASSIFICATION] * 2


# ---------------------------------------------------------------------------
# clear / show
# ---------------------------------------------------------------------------


def test_clear_metadata_twice(tmp_path):
    paths = _make_photos(tmp_path, 2)
    codec = MetadataCodec()
    codec.encode(paths[0], PhotoRecord(people=["Ann"], tags=["x"]))
    pipeline = Pipeline()
    pipeline.run(ClearMetadata(), paths)
    once = [codec.decode(p) for p in paths]
    pipeline.run(ClearMetadata(), paths)
    twice = [codec.decode(p) for p in paths]
    assert once == twice == [PhotoRecord(), PhotoRecord()]


def test_show_metadata_reports_each_file():
    codec = FakeCodec({"a": PhotoRecord(people=["Ann"]), "b": CodecError("corrupt", "b")})
    report = Pipeline(codec=codec).run(ShowMetadata(), ["a", "b", "c"])
    assert len(report.outcomes) == 3
    assert "Ann" in report.outcomes[0].detail
    assert [o.status for o in report.outcomes] == [Status.OK, Status.FAILED, Status.FAILED]


# ---------------------------------------------------------------------------
# find-similar / find
# ---------------------------------------------------------------------------


def _embedded(vec, model="mock:embed"):
    return PhotoRecord(description="d", description_embedding=vec, embedding_model=model)


def test_find_similar_ranks_and_limits(tmp_path):
    ref = tmp_path / "ref.jpg"
    codec = FakeCodec(
        {
            str(ref): _embedded([1.0, 0.0]),
            "a": _embedded([0.0, 1.0]),
            "b": _embedded([1.0, 0.1]),
            "c": _embedded([1.0, 1.0]),
            "d": PhotoRecord(),
        }
    )
    report = Pipeline(codec=codec).run(FindSimilar(ref, top=2), [str(ref), "a", "b", "c", "d"])

    ranked = [o for o in report.ok]
    assert [o.path for o in ranked] == ["b", "c"]
    scores = [o.score for o in ranked]
    assert scores == sorted(scores, reverse=True)
    assert [(o.path, o.detail) for o in report.skipped] == [
        (str(ref), "reference file"),
        ("d", "no description embedding"),
        ("a", "below top 2"),
    ]
    assert sorted(o.path for o in report.outcomes) == sorted([str(ref), "a", "b", "c", "d"])


def test_find_similar_dimension_mismatch_reported(tmp_path):
    ref = tmp_path / "ref.jpg"
    codec = FakeCodec({str(ref): _embedded([1.0, 0.0]), "a": _embedded([1.0, 0.0, 0.0]), "b": _embedded([1.0, 0.0])})
    report = Pipeline(codec=codec).run(FindSimilar(ref), ["a", "b"])
    assert report.failed[0].error_kind is ErrorKind.DIMENSION_MISMATCH
    assert [o.path for o in report.ok] == ["b"]


def test_find_similar_reference_without_embedding_is_fatal(tmp_path):
    ref = tmp_path / "ref.jpg"
    codec = FakeCodec({str(ref): PhotoRecord(description="d")})
    with pytest.raises(SetupError):
        Pipeline(codec=codec).run(FindSimilar(ref), ["a"])


def test_find_similar_unreadable_reference_is_fatal(tmp_path):
    with pytest.raises(SetupError):
        Pipeline(codec=FakeCodec({})).run(FindSimilar(tmp_path / "nope.jpg"), ["a"])


def test_find_by_text_query():
    codec = FakeCodec({"a": _embedded([0.0, 1.0]), "b": _embedded([1.0, 0.0]), "z": _embedded([0.0, 0.0])})
    embedder = _embedder({"a beach": [1.0, 0.0]})
    report = Pipeline(codec=codec, embedder=embedder).run(Find("a beach", top=10), ["a", "b", "z"])
    assert [o.path for o in report.ok] == ["b", "a", "z"]
    assert report.ok[-1].detail == "(not comparable)"
    embedder.embed.assert_called_once_with("a beach")


def test_find_reports_every_file_once():
    files = ["f0", "f1", "f2", "f3"]
    codec = FakeCodec(
        {
            "f0": _embedded([1.0, 0.0]),
            "f1": _embedded([1.0, 0.11]),
            "f2": _embedded([0.5, 1.0]),
            "f3": _embedded([0.0, 1.0]),
        }
    )
    report = Pipeline(codec=codec, embedder=_embedder()).run(Find("q", top=2), files)

    assert sorted(o.path for o in report.outcomes) == files
    assert len(report.lines()) == 4
    assert [o.path for o in report.ok] == ["f0", "f1"]
    assert [(o.path, o.detail) for o in report.skipped] == [("f2", "below top 2"), ("f3", "below top 2")]


def test_find_top_zero_skips_everything():
    codec = FakeCodec({"a": _embedded([1.0, 0.0])})
    report = Pipeline(codec=codec, embedder=_embedder()).run(Find("q", top=0), ["a"])
    assert report.ok == []
    assert [o.path for o in report.skipped] == ["a"]


def test_find_query_embedding_failure_is_fatal():
    embedder = MagicMock()
    embedder.embed.side_effect = ProviderError("down")
    with pytest.raises(SetupError):
        Pipeline(codec=FakeCodec({}), embedder=embedder).run(Find("q"), ["a"])


# ---------------------------------------------------------------------------
# sort-by-tag
# ---------------------------------------------------------------------------


def test_sort_by_tag_end_to_end(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    f1, f2, f3 = _make_photos(src, 3)
    codec = MetadataCodec()
    codec.encode(f1, PhotoRecord(tags=["x"]))
    codec.encode(f3, PhotoRecord(tags=["y", "x"]))
    out = tmp_path / "out"

    report = Pipeline().run(SortByTag(out), [f1, f2, f3])

    assert (out / "x").is_dir() and (out / "y").is_dir()
    assert sorted(p.name for p in (out / "x").iterdir()) == [f1.name, f3.name]
    assert f2.exists()
    assert [o.status for o in report.outcomes] == [Status.OK, Status.SKIPPED, Status.OK]
    assert report.failed == []
    # Moved files keep their metadata
    assert codec.decode(out / "x" / f3.name).tags == ["y", "x"]


def test_sort_by_tag_unreadable_files_reported(tmp_path):
    codec = FakeCodec({"bad": CodecError("corrupt", "bad")})
    report = Pipeline(codec=codec).run(SortByTag(tmp_path / "out"), ["bad", "missing"])
    assert [o.error_kind for o in report.outcomes] == [ErrorKind.CODEC, ErrorKind.NOT_FOUND]


# ---------------------------------------------------------------------------
# dispatch
# ---------------------------------------------------------------------------


def test_unknown_action_type():
    with pytest.raises(UnknownActionError):
        Pipeline(codec=FakeCodec({})).run(object(), [])


def test_progress_callback_in_order():
    calls = []
    codec = FakeCodec({"a": PhotoRecord(), "b": PhotoRecord()})
    Pipeline(codec=codec, progress_callback=lambda i, n, p: calls.append((i, n, p))).run(
        ShowMetadata(), ["a", "b"]
    )
    assert calls == [(1, 2, "a"), (2, 2, "b")]


def test_report_summary_counts():
    codec = FakeCodec({"a": PhotoRecord(people=["Ann"]), "b": PhotoRecord()})
    report = Pipeline(codec=codec).run(FindPerson("Ann"), ["a", "b", "c"])
    assert report.summary() == "find-person: 1 ok, 1 skipped, 1 failed"
    assert len(report.lines()) == 3
