# src/ksnotify/diff_parser.py
import logging
import re
from typing import List, Optional

from unidiff import PatchSet
from unidiff.errors import UnidiffParseError

from .exceptions import DiffParseError
from .models import RawDiffBlock, ResourceChangeSet

logger = logging.getLogger(__name__)

# matches lines like
# "diff -u -N /tmp/LIVE-1234/[apiVersion].[kind].[namespace].[name] /tmp/MERGED-5678/[apiVersion].[kind].[namespace].[name]"
RESOURCE_KEY_PATTERN = re.compile(r"^diff -u -N\s.*/(?P<key>[^/\s]+)\s.*/([^/\s]+)$", re.MULTILINE)
# header lines of a single resource diff: "diff -u -N ...", "--- ..." and "+++ ..."
HEADER_PATTERN = re.compile(r"^((diff -u -N)|(---)|(\+\+\+)).*$", re.MULTILINE)
CHANGE_LINE_PATTERN = re.compile(r"^[\-+].*$", re.MULTILINE)
GENERATION_PATTERN = re.compile(r"^.*generation: \d+.*\r?\n?", re.MULTILINE)
SKAFFOLD_RUN_ID_PATTERN = re.compile(r"skaffold\.dev/run-id")
LABELS_HEADER_PATTERN = re.compile(r"labels:")

DELIMITER = "\x00KSNOTIFY_DELIMITER\x00"
DIFF_LINE_MARKERS = (" ", "+", "-")


def validate_diff_text(diff_text: str) -> None:
    """
    Checks that the input is a well-formed unified diff (headers, hunk lengths).

    Raises:
        DiffParseError: if unidiff rejects the text.
    """
    try:
        PatchSet(diff_text)
    except UnidiffParseError as e:
        logger.debug(f"Problematic diff text (first 500 chars): {diff_text[:500]}")
        raise DiffParseError(f"Malformed diff input: {e}") from e


def extract_resource_keys(diff_text: str) -> List[str]:
    """Returns the resource keys of all "diff -u -N" headers, in source order."""
    return [m.group("key") for m in RESOURCE_KEY_PATTERN.finditer(diff_text)]


def split_diff_bodies(diff_text: str) -> List[str]:
    """Returns the trimmed, non-empty text chunks found between header lines, in source order."""
    replaced = HEADER_PATTERN.sub(DELIMITER, diff_text)
    return [chunk.strip() for chunk in replaced.split(DELIMITER) if chunk.strip()]


def ingest_diff_blocks(diff_text: str) -> List[RawDiffBlock]:
    """
    Splits raw `kubectl diff` output into one block per resource.

    Keys and bodies are found by two independent scans and paired by position,
    so both scans must agree on the number of resources.

    Args:
        diff_text: The complete diff as read from stdin.

    Returns:
        The blocks in the order they appear in the input.

    Raises:
        DiffParseError: if the input is malformed or the number of headers and bodies differ.
    """
    if not diff_text or not diff_text.strip():
        logger.info("Received empty diff text, no resources changed.")
        return []

    validate_diff_text(diff_text)

    keys = extract_resource_keys(diff_text)
    bodies = split_diff_bodies(diff_text)
    logger.debug(f"Resource keys: {keys}")
    if len(keys) != len(bodies):
        raise DiffParseError(
            "Number of resource headers does not match number of diff bodies",
            {"headers": len(keys), "bodies": len(bodies)},
        )
    return [RawDiffBlock(resource_key=k, body=b) for k, b in zip(keys, bodies)]


def build_change_set(blocks: List[RawDiffBlock]) -> ResourceChangeSet:
    """
    Folds blocks into an insertion-ordered mapping. A key that appears more
    than once keeps the body of its last occurrence.
    """
    change_set: ResourceChangeSet = {}
    for block in blocks:
        if block.resource_key in change_set:
            logger.warning(f"Duplicate diff for resource '{block.resource_key}', keeping the last one.")
            # re-insert so the key takes the position of its last occurrence
            del change_set[block.resource_key]
        change_set[block.resource_key] = block.body
    return change_set


def has_changes(body: str) -> bool:
    """True if the body still has at least one added or removed line."""
    return CHANGE_LINE_PATTERN.search(body) is not None


def remove_generation_fields(diff: str) -> str:
    # metadata.generation is bumped by the API server on every apply
    return GENERATION_PATTERN.sub("", diff)


def _indent(line: str) -> int:
    content = line[1:] if line[:1] in DIFF_LINE_MARKERS else line
    content = content.rstrip("\r\n")
    return len(content) - len(content.lstrip(" "))


def _next_surviving_line(lines: List[str], start: int) -> Optional[str]:
    for line in lines[start:]:
        if not SKAFFOLD_RUN_ID_PATTERN.search(line):
            return line
    return None


def remove_skaffold_labels(diff: str) -> str:
    """
    Removes `skaffold.dev/run-id` label lines. A `labels:` header directly above
    a removed line is dropped too, unless other labels remain below it.
    """
    lines = diff.splitlines(keepends=True)
    kept = [] # (index in lines, line)
    for i, line in enumerate(lines):
        if not SKAFFOLD_RUN_ID_PATTERN.search(line):
            kept.append((i, line))
            continue

        if kept and kept[-1][0] == i - 1 and LABELS_HEADER_PATTERN.search(kept[-1][1]):
            header = kept[-1][1]
            following = _next_surviving_line(lines, i + 1)
            if following is None or not following.strip() or _indent(following) <= _indent(header):
                kept.pop()
    return "".join(line for _, line in kept)


def suppress_generation_fields(change_set: ResourceChangeSet) -> ResourceChangeSet:
    result: ResourceChangeSet = {}
    for key, body in change_set.items():
        filtered = remove_generation_fields(body)
        if has_changes(filtered):
            result[key] = filtered
        else:
            logger.info(f"Dropping '{key}': only generation fields changed.")
    return result


def suppress_skaffold_labels(change_set: ResourceChangeSet) -> ResourceChangeSet:
    result: ResourceChangeSet = {}
    for key, body in change_set.items():
        filtered = remove_skaffold_labels(body)
        if has_changes(filtered):
            result[key] = filtered
        else:
            logger.info(f"Dropping '{key}': only skaffold labels changed.")
    return result


def parse_diff_text(diff_text: str, suppress_skaffold: bool = False) -> ResourceChangeSet:
    """
    Parses `kubectl diff` output into a noise-filtered change set.

    Args:
        diff_text: The raw diff output as a string.
        suppress_skaffold: Also remove `skaffold.dev/run-id` labels.

    Returns:
        Mapping of resource key to filtered diff body, in source order.
        Resources without any real change are left out.
    """
    blocks = ingest_diff_blocks(diff_text)
    change_set = build_change_set(blocks)

    change_set = suppress_generation_fields(change_set)
    if suppress_skaffold:
        change_set = suppress_skaffold_labels(change_set)

    logger.info(f"Parsed {len(change_set)} changed resources from {len(blocks)} diff blocks.")
    return change_set
