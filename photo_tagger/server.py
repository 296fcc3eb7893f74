"""MCP server for photo-tagger.

Exposes each batch action as a tool. Every tool expands its file pattern,
runs the Pipeline in-process and returns one outcome line per file.
"""

import logging

from mcp.server.fastmcp import FastMCP

from actions import parse_action
from cli import build_parser, build_pipeline, expand_files
from config import DEFAULT_CONFIDENCE, DEFAULT_TOP
from errors import PhotoTaggerError

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

mcp = FastMCP("photo-tagger")

# Provider overrides are not exposed as tool arguments; defaults come from env
_DEFAULT_ARGS = build_parser().parse_args(["-a", "show-metadata", "-f", "."])


def _run(action_name: str, files: str, **kwargs) -> str:
    try:
        action = parse_action(action_name, **kwargs)
        report = build_pipeline(action, _DEFAULT_ARGS).run(action, expand_files([files]))
    except (PhotoTaggerError, ValueError) as exc:
        return f"Error: {exc}"
    return "\n".join([*report.lines(), report.summary()])


@mcp.tool()
def tag_person(files: str, person: str, reference: str, confidence: float = DEFAULT_CONFIDENCE) -> str:
    """Tag a person in every photo whose face matches a reference image.

    Args:
        files: Glob pattern or path of the photos to check.
        person: Name to record in matching photos.
        reference: Path to an image showing the person.
        confidence: Minimum face similarity (0-100) counted as a match.
    """
    return _run("tag-person", files, person=person, reference=reference, confidence=confidence)


@mcp.tool()
def find_person(files: str, person: str) -> str:
    """List photos whose metadata names the person.

    Args:
        files: Glob pattern or path of the photos to check.
        person: Exact name as it was tagged.
    """
    return _run("find-person", files, person=person)


@mcp.tool()
def tag_description(files: str, overwrite: bool = False, prompt: str = "") -> str:
    """Generate and store a description and its embedding for each photo.

    Args:
        files: Glob pattern or path of the photos.
        overwrite: Regenerate descriptions that already exist.
        prompt: Custom description prompt. Empty uses the default.
    """
    return _run("tag-description", files, overwrite=overwrite, prompt=prompt)


@mcp.tool()
def tag(files: str, labels: str, overwrite: bool = False) -> str:
    """Assign one label from a fixed list to each described photo.

    Args:
        files: Glob pattern or path of the photos.
        labels: Comma-separated allowed labels.
        overwrite: Classify photos that already carry tags.
    """
    return _run("tag", files, tags=labels, overwrite=overwrite)


@mcp.tool()
def clear_metadata(files: str) -> str:
    """Reset the stored metadata of each photo to empty.

    Args:
        files: Glob pattern or path of the photos.
    """
    return _run("clear-metadata", files)


@mcp.tool()
def show_metadata(files: str) -> str:
    """Show the stored metadata of each photo.

    Args:
        files: Glob pattern or path of the photos.
    """
    return _run("show-metadata", files)


@mcp.tool()
def find_similar(files: str, reference: str, top: int = DEFAULT_TOP) -> str:
    """Rank photos by description similarity to a reference photo.

    Args:
        files: Glob pattern or path of the photos to rank.
        reference: Photo whose description embedding is the query.
        top: Number of results to return.
    """
    return _run("find-similar", files, reference=reference, top=top)


@mcp.tool()
def find(files: str, query: str, top: int = DEFAULT_TOP) -> str:
    """Search photos by natural language against their descriptions.

    Args:
        files: Glob pattern or path of the photos to search.
        query: Free-text description of the photo to find.
        top: Number of results to return.
    """
    return _run("find", files, query=query, top=top)


@mcp.tool()
def sort_by_tag(files: str, output: str) -> str:
    """Move each photo into a subdirectory named after its first tag.

    Photos without tags stay where they are.

    Args:
        files: Glob pattern or path of the photos.
        output: Directory that receives one subdirectory per tag.
    """
    return _run("sort-by-tag", files, output=output)


if __name__ == "__main__":
    mcp.run()
