# sitegen/core/validator.py
"""
Structural checks for generated site files.

Nothing here parses HTML/CSS/JS properly; the checks are heuristics that catch
the failure modes model output actually shows (prose around the code, missing
document skeleton, truncated output with unclosed blocks).

    clean_content(kind, text)     -> text without fences / prose
    validate_content(kind, text)  -> ValidationReport(ok, issues)
    repair_content(kind, text)    -> text after one deterministic repair pass
"""
import re
from typing import Callable, Dict, Iterator, List, NamedTuple, Tuple

from sitegen.models import ArtifactKind


class ValidationReport(NamedTuple):
    ok: bool
    issues: Tuple[str, ...] = ()


def _report(issues: List[str]) -> ValidationReport:
    return ValidationReport(not issues, tuple(issues))


# ----------------------------
# Cleaning
# ----------------------------
_FENCED_BLOCK_RE = re.compile(r"```[\w+-]*[ \t]*\n(.*?)(?:\n[ \t]*```|\Z)", re.S)
_DOCTYPE_RE = re.compile(r"<!doctype\s+html", re.I)
_HTML_OPEN_RE = re.compile(r"<html(?=[\s>])", re.I)
_HTML_CLOSE_RE = re.compile(r"</html\s*>", re.I)
# a line with none of these characters cannot be CSS or JS
_CODE_CHARS = frozenset(";{}()[]=<>`$@/*")
_QUOTES = ("'", '"', "`")
_JS_LEADING_WORDS = frozenset({
    "const", "let", "var", "function", "class", "import", "export", "async",
    "await", "return", "if", "for", "while", "switch", "try", "do", "new",
})


def _strip_code_fences(text: str) -> str:
    m = _FENCED_BLOCK_RE.search(text)
    if m:
        return m.group(1)
    return text.replace("```", "")


def _is_prose_line(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return True
    if stripped.startswith(_QUOTES) or any(ch in _CODE_CHARS for ch in stripped):
        return False
    words = stripped.split()
    if words[0] in _JS_LEADING_WORDS:
        return False
    return len(words) > 1 or stripped.endswith((".", ":", "!"))


def _drop_prose_lines(lines: List[str]) -> List[str]:
    """Remove leading lines only when every one of them reads as prose."""
    index = 0
    while index < len(lines) and _is_prose_line(lines[index]):
        index += 1
    if index == len(lines):
        return lines
    return lines[index:]


def _style_body(content: str) -> str:
    lines = content.split("\n")
    first = next((i for i, line in enumerate(lines) if "{" in line), None)
    if first is None:
        return content
    # walk back over the rest of the selector list and any comments above it
    start = first
    while start > 0:
        prev = lines[start - 1].strip()
        if prev.endswith(",") or prev.startswith(("/*", "*", "@")) or prev.endswith("*/"):
            start -= 1
        else:
            break
    head = lines[:start]
    if all(_is_prose_line(line) for line in head):
        return "\n".join(lines[start:])
    return content


def clean_content(kind: ArtifactKind, text: str) -> str:
    """Strip fences and any prose the model wrapped around the file body."""
    content = _strip_code_fences((text or "").replace("\r\n", "\n"))
    if kind == ArtifactKind.MARKUP:
        start = _DOCTYPE_RE.search(content) or _HTML_OPEN_RE.search(content)
        if start:
            content = content[start.start():]
        ends = list(_HTML_CLOSE_RE.finditer(content))
        if ends:
            content = content[:ends[-1].end()]
    elif kind == ArtifactKind.STYLE:
        content = _style_body(content)
        last = content.rfind("}")
        if last != -1 and content[last + 1:].strip() and "{" not in content[last + 1:]:
            content = content[:last + 1]
    elif kind == ArtifactKind.BEHAVIOR:
        content = "\n".join(_drop_prose_lines(content.split("\n")))
    return content.strip()


# ----------------------------
# Markup
# ----------------------------
VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})
# end tag may be omitted in HTML; unclosed ones are not reported
OPTIONAL_CLOSE = frozenset({
    "li", "p", "dt", "dd", "option", "optgroup", "tr", "td", "th",
    "thead", "tbody", "tfoot", "colgroup", "caption",
})
RAW_TEXT_ELEMENTS = frozenset({"script", "style", "textarea", "title"})

_TOKEN_RE = re.compile(
    r"<!--.*?-->|<(/?)([a-zA-Z][a-zA-Z0-9-]*)((?:[^>\"']|\"[^\"]*\"|'[^']*')*)>",
    re.S,
)


class _Tag(NamedTuple):
    start: int
    end: int
    name: str
    closing: bool
    self_closing: bool


def _scan_tags(text: str) -> Iterator[_Tag]:
    """Yield tags in order, skipping comments and raw-text element bodies."""
    pos = 0
    while True:
        m = _TOKEN_RE.search(text, pos)
        if not m:
            return
        pos = m.end()
        if m.group(2) is None:
            continue  # comment
        tag = _Tag(
            start=m.start(),
            end=m.end(),
            name=m.group(2).lower(),
            closing=m.group(1) == "/",
            self_closing=(m.group(3) or "").rstrip().endswith("/"),
        )
        yield tag
        if not tag.closing and not tag.self_closing and tag.name in RAW_TEXT_ELEMENTS:
            closer = re.compile(r"</" + tag.name + r"\s*>", re.I).search(text, pos)
            if not closer:
                return
            pos = closer.start()


def _markup_balance(text: str) -> Tuple[List[str], List[Tuple[int, int, str]]]:
    """
    Match open/close tags. Returns (issues, edits) where each edit is
    (start, end, replacement); start == end means a pure insertion.
    """
    issues: List[str] = []
    edits: List[Tuple[int, int, str]] = []
    stack: List[str] = []
    for tag in _scan_tags(text):
        if tag.closing:
            if stack and stack[-1] == tag.name:
                stack.pop()
            elif tag.name in stack:
                while stack[-1] != tag.name:
                    name = stack.pop()
                    if name not in OPTIONAL_CLOSE:
                        issues.append(f"unclosed <{name}>")
                        edits.append((tag.start, tag.start, f"</{name}>"))
                stack.pop()
            else:
                issues.append(f"stray </{tag.name}>")
                edits.append((tag.start, tag.end, ""))
        elif tag.self_closing or tag.name in VOID_ELEMENTS:
            continue
        else:
            stack.append(tag.name)
    for name in reversed(stack):
        if name not in OPTIONAL_CLOSE:
            issues.append(f"unclosed <{name}>")
            edits.append((len(text), len(text), f"</{name}>"))
    return issues, edits


def _apply_edits(text: str, edits: List[Tuple[int, int, str]]) -> str:
    out = []
    cursor = 0
    # stable sort keeps insertions at one position in scan order
    for start, end, replacement in sorted(edits, key=lambda e: e[0]):
        out.append(text[cursor:start])
        out.append(replacement)
        cursor = max(cursor, end)
    out.append(text[cursor:])
    return "".join(out)


_MARKUP_MARKERS = (
    ("missing doctype", _DOCTYPE_RE),
    ("missing <html>", _HTML_OPEN_RE),
    ("missing <head>", re.compile(r"<head(?=[\s>])", re.I)),
    ("missing <body>", re.compile(r"<body(?=[\s>])", re.I)),
    ("missing </head>", re.compile(r"</head\s*>", re.I)),
    ("missing </body>", re.compile(r"</body\s*>", re.I)),
    ("missing </html>", _HTML_CLOSE_RE),
)


def validate_markup(text: str) -> ValidationReport:
    issues = [label for label, rx in _MARKUP_MARKERS if not rx.search(text)]
    balance_issues, _ = _markup_balance(text)
    return _report(issues + balance_issues)


def _insert_before(text: str, pattern: str, snippet: str, last: bool = False) -> Tuple[str, bool]:
    matches = list(re.finditer(pattern, text, re.I))
    if not matches:
        return text, False
    m = matches[-1] if last else matches[0]
    return text[:m.start()] + snippet + text[m.start():], True


def _insert_after(text: str, pattern: str, snippet: str) -> Tuple[str, bool]:
    m = re.search(pattern, text, re.I)
    if not m:
        return text, False
    return text[:m.end()] + snippet + text[m.end():], True


def repair_markup(text: str, title: str = "Generated Page") -> str:
    content = text.strip()
    if not _DOCTYPE_RE.search(content):
        content = "<!DOCTYPE html>\n" + content
    if not _HTML_OPEN_RE.search(content):
        m = _DOCTYPE_RE.search(content)
        head_end = content.find(">", m.start()) + 1
        body = content[head_end:].strip()
        body = _HTML_CLOSE_RE.sub("", body)
        content = content[:head_end] + '\n<html lang="en">\n' + body + "\n</html>"
    if not re.search(r"<head(?=[\s>])", content, re.I):
        head = (
            "\n<head>\n"
            '  <meta charset="UTF-8">\n'
            '  <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
            f"  <title>{title}</title>\n"
            "</head>"
        )
        content, _ = _insert_after(content, r"<html(?:[^>\"']|\"[^\"]*\"|'[^']*')*>", head)
    elif not re.search(r"</head\s*>", content, re.I):
        content, done = _insert_before(content, r"<body(?=[\s>])", "</head>\n")
        if not done:
            content, _ = _insert_after(content, r"<head(?:[^>\"']|\"[^\"]*\"|'[^']*')*>", "\n</head>")
    if not re.search(r"<body(?=[\s>])", content, re.I):
        content, _ = _insert_after(content, r"</head\s*>", "\n<body>")
        if not re.search(r"</body\s*>", content, re.I):
            content, done = _insert_before(content, r"</html\s*>", "</body>\n", last=True)
            if not done:
                content += "\n</body>"
    elif not re.search(r"</body\s*>", content, re.I):
        content, done = _insert_before(content, r"</html\s*>", "</body>\n", last=True)
        if not done:
            content += "\n</body>"
    if not _HTML_CLOSE_RE.search(content):
        content += "\n</html>"
    _, edits = _markup_balance(content)
    if edits:
        content = _apply_edits(content, edits)
    return content


# ----------------------------
# Delimiter scanning (style / behavior)
# ----------------------------
_PAIRS = {")": "(", "]": "[", "}": "{"}


class _DelimiterScan(NamedTuple):
    stray: List[int]          # indexes of closers with no opener
    unclosed: List[str]       # openers still open at EOF, outermost first
    open_comment: bool
    open_string: str          # quote char of an unterminated string, or ""


def _scan_delimiters(text: str, openers: str, line_comments: bool, template_literals: bool) -> _DelimiterScan:
    stack: List[str] = []
    stray: List[int] = []
    closers = {c: o for c, o in _PAIRS.items() if o in openers}
    i = 0
    n = len(text)
    quote = ""
    while i < n:
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote or (ch == "\n" and quote != "`"):
                quote = ""
            i += 1
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                return _DelimiterScan(stray, stack, True, "")
            i = end + 2
            continue
        if line_comments and text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end + 1
            continue
        if ch in "\"'" or (template_literals and ch == "`"):
            quote = ch
            i += 1
            continue
        if ch in openers:
            stack.append(ch)
        elif ch in closers:
            if stack and stack[-1] == closers[ch]:
                stack.pop()
            else:
                stray.append(i)
        i += 1
    return _DelimiterScan(stray, stack, False, quote)


def _delimiter_issues(scan: _DelimiterScan) -> List[str]:
    issues = []
    if scan.stray:
        issues.append(f"{len(scan.stray)} unmatched closing delimiter(s)")
    if scan.unclosed:
        issues.append(f"unclosed {''.join(scan.unclosed)}")
    if scan.open_comment:
        issues.append("unterminated comment")
    if scan.open_string:
        issues.append(f"unterminated {scan.open_string} string")
    return issues


def _close_delimiters(text: str, scan: _DelimiterScan) -> str:
    if scan.stray:
        stray = set(scan.stray)
        text = "".join(ch for i, ch in enumerate(text) if i not in stray)
    if scan.open_string:
        text += scan.open_string
    if scan.open_comment:
        text += " */"
    closing = {o: c for c, o in _PAIRS.items()}
    for opener in reversed(scan.unclosed):
        text += "\n" + closing[opener]
    return text


# ----------------------------
# Style
# ----------------------------
_CSS_RULE_RE = re.compile(r"[^{}\s][^{}]*\{")
_CSS_ROOT_BLOCK = """:root {
  --primary-color: #2563eb;
  --secondary-color: #64748b;
  --background-color: #ffffff;
  --text-color: #1f2937;
  --font-family: system-ui, -apple-system, sans-serif;
}
"""


def _strip_css_comments(text: str) -> str:
    return re.sub(r"/\*.*?\*/", "", text, flags=re.S)


def validate_style(text: str) -> ValidationReport:
    issues = _delimiter_issues(_scan_delimiters(text, "{", line_comments=False, template_literals=False))
    if not _CSS_RULE_RE.search(_strip_css_comments(text)):
        issues.append("no CSS rule found")
    return _report(issues)


def repair_style(text: str) -> str:
    content = text.strip()
    # text without any rule is not a stylesheet; leave it invalid
    if ":root" not in content and _CSS_RULE_RE.search(_strip_css_comments(content)):
        content = _CSS_ROOT_BLOCK + "\n" + content
    scan = _scan_delimiters(content, "{", line_comments=False, template_literals=False)
    return _close_delimiters(content, scan)


# ----------------------------
# Behavior
# ----------------------------
_JS_TOKEN_RE = re.compile(
    r"\b(?:const|let|var|function|class|import|export|return|document|window|addEventListener)\b|=>"
)


def validate_behavior(text: str) -> ValidationReport:
    issues = _delimiter_issues(_scan_delimiters(text, "([{", line_comments=True, template_literals=True))
    if not _JS_TOKEN_RE.search(text):
        issues.append("no JavaScript code found")
    return _report(issues)


def repair_behavior(text: str) -> str:
    content = text.strip()
    scan = _scan_delimiters(content, "([{", line_comments=True, template_literals=True)
    return _close_delimiters(content, scan)


# ----------------------------
# Dispatch
# ----------------------------
_VALIDATORS: Dict[ArtifactKind, Callable[[str], ValidationReport]] = {
    ArtifactKind.MARKUP: validate_markup,
    ArtifactKind.STYLE: validate_style,
    ArtifactKind.BEHAVIOR: validate_behavior,
}
_REPAIRERS: Dict[ArtifactKind, Callable[[str], str]] = {
    ArtifactKind.MARKUP: repair_markup,
    ArtifactKind.STYLE: repair_style,
    ArtifactKind.BEHAVIOR: repair_behavior,
}


def validate_content(kind: ArtifactKind, text: str) -> ValidationReport:
    if not text or not text.strip():
        return ValidationReport(False, ("empty content",))
    return _VALIDATORS[kind](text)


def repair_content(kind: ArtifactKind, text: str) -> str:
    if not text or not text.strip():
        return ""
    return _REPAIRERS[kind](text)
