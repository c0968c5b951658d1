"""Markdown files with a YAML frontmatter block."""

from __future__ import annotations

import re
from typing import Any

import yaml

from .errors import ArtifactParseError

DELIMITER = "---"

# Both LF and CRLF line endings are accepted around the delimiters.
_OPENING = re.compile(r"---\r?\n")
_CLOSING = re.compile(r"\r?\n---(?:\r?\n|\Z)")


def split_frontmatter(raw: str) -> tuple[dict[str, Any], str]:
    """Split a serialized artifact into (frontmatter, content).

    Args:
        raw: Full file text, starting with a ``---`` line.

    Returns:
        Parsed frontmatter mapping and the body text after the block.

    Raises:
        ArtifactParseError: If the block is missing, unterminated,
            not valid YAML, or not a mapping.
    """
    opening = _OPENING.match(raw)
    if opening is None:
        raise ArtifactParseError("missing frontmatter block")

    # Start one character early so an empty block closes on the opening newline.
    closing = _CLOSING.search(raw, opening.end() - 1)
    if closing is None:
        raise ArtifactParseError("unterminated frontmatter block")

    block = raw[opening.end():closing.start()] if closing.start() > opening.end() else ""
    body = raw[closing.end():]
    try:
        data = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as exc:
        raise ArtifactParseError(f"invalid frontmatter YAML: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ArtifactParseError("frontmatter is not a mapping")
    return data, body


def join_frontmatter(frontmatter: dict[str, Any], content: str) -> str:
    """Serialize frontmatter + content back into file text."""
    block = yaml.safe_dump(
        frontmatter, sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    return f"{DELIMITER}\n{block}{DELIMITER}\n{content}"
