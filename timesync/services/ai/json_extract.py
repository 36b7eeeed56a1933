"""
Pull the first JSON object out of free-form model output.

Models wrap JSON in prose or markdown fences despite instructions, so the
response is scanned for the first balanced ``{...}`` rather than parsed whole.
"""

import json
from typing import Any


def find_json_object(text: str) -> str | None:
    """Return the first balanced {...} substring, honoring strings and escapes."""
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            ch = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Parse the first balanced JSON object in text, or None if there is none."""
    candidate = find_json_object(text)
    while candidate is not None:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        offset = text.find(candidate) + 1
        text = text[offset:]
        candidate = find_json_object(text)
    return None
