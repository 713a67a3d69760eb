"""
Tolerant JSON extraction from raw model output.

Models wrap JSON in prose or markdown fences often enough that a plain
json.loads() is not sufficient. Strategies, in order:

1. Direct parse of the stripped text
2. Contents of the first fenced code block (```json ... ``` or ``` ... ```)
3. First balanced {...} span, then first balanced [...] span, counting
   brackets outside of string literals only
"""

import json
import re
from typing import Any, Optional, Tuple

CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?\s*```")


class JSONExtractionError(ValueError):
    """No JSON value could be located in the text."""

    pass


def extract_json(content: str) -> Any:
    """Extract the first JSON value from ``content``.

    Args:
        content: Raw model output

    Returns:
        Parsed JSON value (dict, list, or scalar for a direct parse)

    Raises:
        JSONExtractionError: If no strategy yields valid JSON
    """
    trimmed = content.strip()

    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        pass

    match = CODE_BLOCK_PATTERN.search(trimmed)
    if match and match.group(1).strip():
        try:
            return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            pass

    for open_char, close_char in (("{", "}"), ("[", "]")):
        found, value = _extract_balanced(trimmed, open_char, close_char)
        if found:
            return value

    raise JSONExtractionError(
        f"Failed to extract JSON from content: {trimmed[:100]}"
    )


def _extract_balanced(text: str, open_char: str, close_char: str) -> Tuple[bool, Optional[Any]]:
    """Parse the first balanced span starting at the first ``open_char``.

    Returns (found, value). found is False when there is no opening char, the
    span never closes, or the balanced span is not valid JSON.
    """
    start = text.find(open_char)
    if start == -1:
        return False, None

    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                try:
                    return True, json.loads(text[start : i + 1])
                except json.JSONDecodeError:
                    return False, None

    return False, None
