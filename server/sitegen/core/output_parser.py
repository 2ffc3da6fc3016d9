# sitegen/core/output_parser.py
"""
Structured-output extraction for model responses.

Model text is not guaranteed to be well-formed JSON. `extract` walks a fixed
list of repair tiers, each strictly more lossy than the previous one:

    1. direct       - json.loads on the trimmed text
    2. slice        - strip code fences, keep the outermost {...} (or [...])
    3. rewrite      - string-aware character pass: escape raw control chars
                      inside strings, collapse them outside, drop trailing
                      commas, quote bare keys
    4. partial      - pull "key": [...] / "key": "..." fragments for the
                      caller's expected keys and assemble a partial object
    5. default      - hand back the caller's default, flagged degraded

Each tier returns a TierOutcome instead of raising; only `extract` raises
MalformedOutput, and only when no tier succeeded and no default was given.
"""
import json
import logging
import re
from typing import Any, Callable, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from sitegen.core.errors import MalformedOutput

logger = logging.getLogger(__name__)


class TierOutcome(NamedTuple):
    ok: bool
    value: Any = None
    reason: str = ""


class ExtractionResult(NamedTuple):
    value: Any
    tier: str
    degraded: bool = False


_OPEN_FENCE_RE = re.compile(r"\A\s*```[\w-]*[ \t]*(?:\n|\Z)")
_CLOSE_FENCE_RE = re.compile(r"(?:\A|\n)[ \t]*```[ \t]*\s*\Z")
_BARE_KEY_START = re.compile(r"[A-Za-z_$]")
_BARE_KEY_CHAR = re.compile(r"[A-Za-z0-9_$-]")


def _failed(reason: str) -> TierOutcome:
    return TierOutcome(False, None, reason)


def _loads(text: str) -> TierOutcome:
    try:
        value = json.loads(text)
    except (ValueError, TypeError) as e:
        return _failed(str(e))
    if not isinstance(value, (dict, list)):
        return _failed(f"parsed to {type(value).__name__}, not an object or array")
    return TierOutcome(True, value)


# ----------------------------
# Tier helpers
# ----------------------------
def strip_fences(text: str) -> str:
    """
    Remove a leading ```lang line and a trailing ``` line. Backticks anywhere
    else belong to the payload and are left alone.
    """
    out = _OPEN_FENCE_RE.sub("", text or "", count=1)
    out = _CLOSE_FENCE_RE.sub("", out, count=1)
    return out.strip()


def slice_structured(text: str) -> Optional[str]:
    """
    Return the span from the first '{' to the last '}'. Only text with no '{'
    at all falls back to the outermost [...] span.
    """
    start = text.find("{")
    if start != -1:
        end = text.rfind("}")
        return text[start:end + 1] if end > start else None
    start = text.find("[")
    end = text.rfind("]")
    if start != -1 and end > start:
        return text[start:end + 1]
    return None


def rewrite_json_text(text: str) -> str:
    """
    Single string-aware pass over almost-JSON text.

    Inside string literals raw newlines, tabs and carriage returns are escaped so
    their content survives parsing unchanged. Outside strings the same characters
    collapse to a space, trailing commas before a closer are dropped, and bare
    object keys are quoted.
    """
    out: List[str] = []
    in_string = False
    escaped = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            if escaped:
                out.append(ch)
                escaped = False
            elif ch == "\\":
                out.append(ch)
                escaped = True
            elif ch == '"':
                out.append(ch)
                in_string = False
            elif ch == "\n":
                out.append("\\n")
            elif ch == "\r":
                out.append("\\r")
            elif ch == "\t":
                out.append("\\t")
            else:
                out.append(ch)
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
            continue
        if ch in "\n\r\t":
            if not out or out[-1] != " ":
                out.append(" ")
            i += 1
            continue
        if ch == ",":
            j = i + 1
            while j < n and text[j] in " \n\r\t":
                j += 1
            if j < n and text[j] in "}]":
                i += 1
                continue
            out.append(ch)
            i += 1
            continue
        if _BARE_KEY_START.match(ch) and _previous_significant(out) in ("{", ","):
            j = i
            while j < n and _BARE_KEY_CHAR.match(text[j]):
                j += 1
            k = j
            while k < n and text[k] in " \n\r\t":
                k += 1
            if k < n and text[k] == ":":
                out.append('"' + text[i:j] + '"')
                i = j
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def _previous_significant(out: List[str]) -> str:
    for piece in reversed(out):
        stripped = piece.strip()
        if stripped:
            return stripped[-1]
    return ""


def _balanced_end(text: str, start: int) -> int:
    """Index just past the bracket that closes text[start], or -1 if it never closes."""
    opener = text[start]
    closer = "]" if opener == "[" else "}"
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
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
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"', re.DOTALL)


def _decode_string_literal(body: str) -> str:
    try:
        return json.loads(rewrite_json_text('"' + body + '"'))
    except ValueError:
        return body


def _extract_field(text: str, key: str) -> TierOutcome:
    """Try every occurrence of `key:`; the first whose value parses wins."""
    outcome = _failed(f"key {key!r} not found")
    for m in re.finditer(r'(?<![A-Za-z0-9_])"?' + re.escape(key) + r'"?\s*:\s*', text):
        outcome = _field_value(text, m.end(), key)
        if outcome.ok:
            return outcome
    return outcome


def _field_value(text: str, pos: int, key: str) -> TierOutcome:
    if pos >= len(text):
        return _failed(f"key {key!r} has no value")
    head = text[pos]
    if head in "[{":
        end = _balanced_end(text, pos)
        if end != -1:
            fragment = text[pos:end]
            for candidate in (fragment, rewrite_json_text(fragment)):
                try:
                    return TierOutcome(True, json.loads(candidate))
                except ValueError:
                    continue
        if head == "[":
            # unterminated or unparsable list: salvage the quoted items
            tail = text[pos:end] if end != -1 else text[pos:]
            items = [_decode_string_literal(s) for s in _QUOTED_RE.findall(tail)]
            if items:
                return TierOutcome(True, items)
        return _failed(f"value of {key!r} unrecoverable")
    if head == '"':
        sm = _QUOTED_RE.match(text, pos)
        if sm:
            return TierOutcome(True, _decode_string_literal(sm.group(1)))
        return _failed(f"string value of {key!r} unterminated")
    return _failed(f"value of {key!r} is not a string or array")


# ----------------------------
# Tiers
# ----------------------------
def _tier_direct(text: str, expected_keys: Sequence[str]) -> TierOutcome:
    return _loads(text.strip())


def _tier_slice(text: str, expected_keys: Sequence[str]) -> TierOutcome:
    sliced = slice_structured(strip_fences(text))
    if sliced is None:
        return _failed("no braces found")
    return _loads(sliced)


def _tier_rewrite(text: str, expected_keys: Sequence[str]) -> TierOutcome:
    sliced = slice_structured(strip_fences(text))
    if sliced is None:
        return _failed("no braces found")
    return _loads(rewrite_json_text(sliced))


def _tier_partial(text: str, expected_keys: Sequence[str]) -> TierOutcome:
    if not expected_keys:
        return _failed("no expected keys supplied")
    body = strip_fences(text)
    found = {}
    for key in expected_keys:
        outcome = _extract_field(body, key)
        if outcome.ok:
            found[key] = outcome.value
    if not found:
        return _failed("no expected key recovered")
    return TierOutcome(True, found)


TIERS: Tuple[Tuple[str, Callable[[str, Sequence[str]], TierOutcome]], ...] = (
    ("direct", _tier_direct),
    ("slice", _tier_slice),
    ("rewrite", _tier_rewrite),
    ("partial", _tier_partial),
)


def extract(text: Optional[str],
            expected_keys: Iterable[str] = (),
            default: Any = None) -> ExtractionResult:
    """
    Extract a structured value (dict or list) from free-form model text.

    `expected_keys` feeds the partial-extraction tier. When every tier fails the
    `default` is returned flagged as degraded; without a default MalformedOutput
    is raised.
    """
    keys = tuple(expected_keys)
    raw = text or ""
    reasons = []
    if raw.strip():
        for name, tier in TIERS:
            outcome = tier(raw, keys)
            if outcome.ok:
                if name != "direct":
                    logger.debug("structured output recovered by %s tier", name)
                return ExtractionResult(outcome.value, name)
            reasons.append(f"{name}: {outcome.reason}")
    else:
        reasons.append("empty input")

    if default is not None:
        logger.warning("structured output unrecoverable, using default (%s)", "; ".join(reasons))
        return ExtractionResult(default, "default", True)
    raise MalformedOutput("could not extract structured output (" + "; ".join(reasons) + ")", raw=raw)
