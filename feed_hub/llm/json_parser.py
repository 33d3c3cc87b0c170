"""Lenient JSON extraction from model replies.

Models often wrap JSON in prose or Markdown fences. These helpers try the
raw reply first, then a fenced ```json block, then the outermost braces.
"""

from __future__ import annotations

import json
from typing import Any


def parse_json_response(content: str) -> dict[str, Any]:
    """Parse a JSON object out of a model reply.

    Raises:
        json.JSONDecodeError: If no JSON object can be recovered
    """
    if not content or not content.strip():
        raise json.JSONDecodeError("Empty content", content or "", 0)
    try:
        obj = json.loads(content)
    except json.JSONDecodeError:
        obj = json.loads(_extract_json_snippet(content))
    if not isinstance(obj, dict):
        raise json.JSONDecodeError("Expected a JSON object", content, 0)
    return obj


def _extract_json_snippet(content: str) -> str:
    fence = _extract_fenced_json(content)
    if fence:
        return fence
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise json.JSONDecodeError("No JSON object found", content, 0)
    return content[start : end + 1]


def _extract_fenced_json(content: str) -> str | None:
    lines = content.splitlines()
    start_idx = None
    for idx, line in enumerate(lines):
        if line.strip().startswith("```") and "json" in line.lower():
            start_idx = idx + 1
            break
    if start_idx is None:
        return None
    for idx in range(start_idx, len(lines)):
        if lines[idx].strip().startswith("```"):
            snippet = "\n".join(lines[start_idx:idx]).strip()
            return snippet or None
    return None
