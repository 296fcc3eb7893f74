"""Command-line front end.

    python cli.py -a tag-description -f "photos/**/*.jpg"
    python cli.py -a tag-person -f "photos/*.jpg" -p Alice -r alice.jpg -c 85
    python cli.py -a tag -f "photos/*.jpg" -t "beach,city,forest"
    python cli.py -a find -f "photos/*.jpg" --query "kids on a boat" --top 5
    python cli.py -a sort-by-tag -f "photos/*.jpg" --output sorted/
"""

import argparse
import glob
import logging
import sys
from pathlib import Path

from actions import ACTION_NAMES, Find, Tag, TagDescription, TagPerson, parse_action
from classifier import Classifier
from config import DEFAULT_CONFIDENCE, DEFAULT_TOP, SUPPORTED_EXTENSIONS
from errors import PhotoTaggerError, SetupError
from identity import IdentityMatcher
from pipeline import Pipeline
from providers import default_config, make_describer, make_embedder, make_label_generator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photo-tagger",
        description="Tag, describe, search and sort photos by metadata stored in the photos.",
    )
    parser.add_argument("-a", "--action", required=True, help=f"One of: {', '.join(ACTION_NAMES)}")
    parser.add_argument("-f", "--files", required=True, nargs="+", help="File paths or glob patterns")
    parser.add_argument("-p", "--person-name", default="", help="Person to tag or find")
    parser.add_argument("-r", "--reference-file", default="", help="Reference image")
    parser.add_argument("-c", "--confidence", type=float, default=DEFAULT_CONFIDENCE,
                        help="Face similarity threshold, 0-100 (default %(default)s)")
    parser.add_argument("-o", "--overwrite", action="store_true",
                        help="Regenerate descriptions/tags that are already present")
    parser.add_argument("-t", "--tags", default="", help="Comma-separated allowed labels")
    parser.add_argument("--prompt", default="", help="Custom description prompt")
    parser.add_argument("-q", "--query", default="", help="Free-text query for find")
    parser.add_argument("--top", type=int, default=DEFAULT_TOP, help="Result limit (default %(default)s)")
    parser.add_argument("--output", default="", help="Output directory for sort-by-tag")
    parser.add_argument("--describe-provider", default=None)
    parser.add_argument("--describe-model", default=None)
    parser.add_argument("--embedding-provider", default=None)
    parser.add_argument("--embedding-model", default=None)
    parser.add_argument("--classify-provider", default=None)
    parser.add_argument("--classify-model", default=None)
    parser.add_argument("--log-level", default="WARNING")
    return parser


def expand_files(patterns: list[str]) -> list[str]:
    """Expand glob patterns to a sorted, de-duplicated list of files.

    Glob matches are limited to SUPPORTED_EXTENSIONS. Literal paths are
    kept even when missing so they are reported per file.
    """
    files: list[str] = []
    seen: set[str] = set()
    for pattern in patterns:
        if not glob.has_magic(pattern):
            matches = [pattern]
        else:
            matches = [
                m
                for m in sorted(glob.glob(pattern, recursive=True))
                if Path(m).is_file() and Path(m).suffix.lower() in SUPPORTED_EXTENSIONS
            ]
        for match in matches:
            if match not in seen:
                seen.add(match)
                files.append(match)
    if not files:
        raise SetupError(f"No files match {' '.join(patterns)}")
    return files


def build_pipeline(action, args: argparse.Namespace) -> Pipeline:
    """Construct only the collaborators ``action`` needs."""
    describer = embedder = classifier = matcher = None
    if isinstance(action, TagDescription):
        describer = make_describer(
            default_config("describe", args.describe_provider, args.describe_model)
        )
    if isinstance(action, (TagDescription, Find)):
        embedder = make_embedder(
            default_config("embedding", args.embedding_provider, args.embedding_model)
        )
    if isinstance(action, Tag):
        classifier = Classifier(
            make_label_generator(
                default_config("classify", args.classify_provider, args.classify_model)
            )
        )
    if isinstance(action, TagPerson):
        from face import make_face_comparer

        matcher = IdentityMatcher(make_face_comparer(default_config("face")), action.threshold)
    return Pipeline(
        describer=describer,
        embedder=embedder,
        classifier=classifier,
        matcher=matcher,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        action = parse_action(
            args.action,
            person=args.person_name,
            reference=args.reference_file,
            confidence=args.confidence,
            overwrite=args.overwrite,
            tags=args.tags,
            prompt=args.prompt,
            query=args.query,
            top=args.top,
            output=args.output,
        )
        files = expand_files(args.files)
        pipeline = build_pipeline(action, args)
        report = pipeline.run(action, files)
    except (PhotoTaggerError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    for line in report.lines():
        print(line)
    print(report.summary(), file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
