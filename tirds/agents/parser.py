"""
Structured-output extraction from model responses.

Models wrap JSON in code fences, prefix it with prose, or return it bare.
Candidates are tried in that order; the first one that parses and validates
wins.
"""

import json
import logging
import re
from typing import Dict, Iterator, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ExtractionError

logger = logging.getLogger("tirds.agents.parser")

M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"```[ \t]*([A-Za-z0-9_-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)


def _fenced_blocks(text: str) -> Iterator[str]:
    for match in _FENCE_RE.finditer(text):
        lang, body = match.group(1).lower(), match.group(2)
        if lang in ("", "json"):
            yield body.strip()


def _match_braces(text: str) -> Dict[int, int]:
    """Map each ``{`` that closes to its ``}``, ignoring braces inside JSON strings."""
    stack: List[int] = []
    matches: Dict[int, int] = {}
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and stack:
            in_string = True
        elif ch == "{":
            stack.append(i)
        elif ch == "}" and stack:
            matches[stack.pop()] = i
    return matches


def _balanced_objects(text: str) -> Iterator[str]:
    """Top-level balanced ``{...}`` spans in order; an unclosed brace is skipped."""
    matches = _match_braces(text)
    start = text.find("{")
    while start != -1:
        end = matches.get(start)
        if end is None:
            start = text.find("{", start + 1)
            continue
        yield text[start:end + 1]
        start = text.find("{", end + 1)


def candidates(text: str) -> Iterator[str]:
    yield from _fenced_blocks(text)
    yield from _balanced_objects(text)
    yield text.strip()


def extract_structured(text: str, model: Type[M]) -> M:
    """
    Pull a ``model`` instance out of free-form model output.

    Raises:
        ExtractionError: no candidate both parsed as JSON and validated.
    """
    last_error = "no JSON found"
    for candidate in candidates(text):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = f"invalid JSON: {e}"
            continue
        try:
            return model.model_validate(data)
        except ValidationError as e:
            last_error = f"schema mismatch: {e.error_count()} error(s)"
            logger.debug(f"Candidate rejected for {model.__name__}: {e}")
            continue
    raise ExtractionError(f"could not extract {model.__name__}: {last_error}")
