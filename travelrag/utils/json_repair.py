"""
Defensive JSON parsing for completion-provider output.

Model responses may wrap JSON in markdown fences, add prose around it,
contain invalid escapes, or be cut off mid-value when the token limit is
hit. parse_json_response() recovers what it can and falls back to a
default instead of raising.
"""

import json
import logging
import re
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OPEN_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*)")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")
_INVALID_ESCAPE_RE = re.compile(r'\\\\|\\(?!["\\/bfnrtu])')

_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Return the body of the first ``` fence, tolerating a missing closing fence"""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    match = _OPEN_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def extract_balanced(text: str, open_char: str) -> Optional[str]:
    """
    Extract the first value starting with open_char by bracket matching.

    Brackets inside string literals are ignored. If the value never closes
    (truncated output) the remainder of the text is returned so the repair
    step can work on it.
    """
    start = text.find(open_char)
    if start == -1:
        return None

    stack: List[str] = []
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]"):
            if stack:
                stack.pop()
            if not stack:
                return text[start:i + 1]
    return text[start:]


def sanitize_json_text(text: str) -> str:
    """Drop control characters (except tab/newline/CR) and invalid backslash escapes"""
    text = _CONTROL_CHARS_RE.sub("", text)
    return _INVALID_ESCAPE_RE.sub(lambda m: m.group(0) if len(m.group(0)) == 2 else "", text)


def _scan(text: str):
    """
    Walk text outside string literals.

    Returns (open_stack, close_positions, in_string) where close_positions
    are the indices just after every closing bracket.
    """
    stack: List[str] = []
    closes: List[int] = []
    in_string = False
    escape = False
    for i, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]"):
            if stack:
                stack.pop()
            closes.append(i + 1)
    return stack, closes, in_string


def _close_open_brackets(prefix: str) -> str:
    stack, _, _ = _scan(prefix)
    return prefix + "".join(_CLOSERS[ch] for ch in reversed(stack))


def repair_truncated_json(text: str) -> Optional[Any]:
    """
    Recover a truncated array/object.

    Cuts back to the end of the last complete nested value, recounts the
    brackets still open at that point and closes them. Earlier cut points
    are tried until one parses.

    Example:
        '[{"a":1},{"a":2,'  ->  [{"a": 1}]
    """
    stack, closes, in_string = _scan(text)
    if not stack and not in_string:
        return None

    for cut in reversed(closes):
        candidate = _close_open_brackets(text[:cut].rstrip().rstrip(","))
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def _safe_parse(text: str) -> Any:
    """
    json.loads with a sanitize pass and a truncation repair pass.

    Raises:
        ValueError: If every attempt fails
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    sanitized = sanitize_json_text(text)
    try:
        return json.loads(sanitized)
    except json.JSONDecodeError:
        pass

    repaired = repair_truncated_json(sanitized)
    if repaired is not None:
        logger.info("Recovered truncated JSON response")
        return repaired

    raise ValueError("All JSON parse attempts failed")


def parse_json_response(text: Optional[str], default: Any = None) -> Any:
    """
    Parse JSON out of a model response.

    When default is a list an array is preferred and a lone object is
    wrapped into a list; otherwise the first container in the text wins.

    Args:
        text: Raw completion text
        default: Returned when nothing can be recovered

    Returns:
        Parsed JSON value or default
    """
    if not text:
        return default

    body = strip_code_fences(text)
    if isinstance(default, list):
        order = ("[", "{")
    else:
        # Whichever container opens first is the top-level value
        first_obj, first_arr = body.find("{"), body.find("[")
        order = ("[", "{") if first_arr != -1 and (first_obj == -1 or first_arr < first_obj) else ("{", "[")

    for open_char in order:
        fragment = extract_balanced(body, open_char)
        if fragment is None:
            continue
        try:
            parsed = _safe_parse(fragment)
        except ValueError as e:
            logger.info(f"No JSON in {open_char!r} fragment: {e}")
            continue
        if isinstance(default, list):
            if isinstance(parsed, list):
                return parsed
            if isinstance(parsed, dict):
                return [parsed]
            continue
        return parsed

    logger.error(f"JSON parsing failed: no candidate fragment parsed. Raw text: {text[:500]!r}")
    return default
