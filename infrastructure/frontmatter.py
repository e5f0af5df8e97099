"""Bean file header (frontmatter) parsing and minimal-diff rewriting."""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import yaml

OPEN_DELIMITER = "---"
CLOSE_DELIMITERS = ("---", "...")

# Plain scalars starting with one of these are YAML indicators.
_INDICATOR_START = re.compile(r"""^[-?:{}\[\]#&*!|>'"%@`,]""")
_NEEDS_QUOTES = re.compile(r": |:$| #|\n|\r|\t")
_TITLE_LINE = re.compile(r"^(?P<key>title[ \t]*:[ \t]*)(?P<value>.*?)[ \t]*$")


@dataclass
class SplitDocument:
    header: Optional[str]
    body: str
    newline: str = "\n"
    header_offset: int = 0

    @property
    def has_header(self) -> bool:
        return self.header is not None


def split_document(content: str) -> SplitDocument:
    """Split a bean file into header text and body.

    Only the first two delimiter lines bound the header: the opening ``---``
    must be the first line (a BOM or leading indent is tolerated) and the
    first later ``---``/``...`` line closes it. Delimiter-looking lines after
    that are body content and are returned verbatim.
    """
    text = content[1:] if content.startswith("\ufeff") else content
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != OPEN_DELIMITER:
        return SplitDocument(header=None, body=content)
    newline = "\r\n" if lines[0].endswith("\r\n") else "\n"
    for idx in range(1, len(lines)):
        if lines[idx].rstrip("\r\n").rstrip() in CLOSE_DELIMITERS and not lines[idx][:1].isspace():
            header = "".join(lines[1:idx])
            body = "".join(lines[idx + 1 :])
            offset = len(content) - len(text) + len(lines[0])
            return SplitDocument(header=header, body=body, newline=newline, header_offset=offset)
    return SplitDocument(header=None, body=content, newline=newline)


def _coerce_scalar(value: Any) -> str:
    """Normalize YAML scalars to strings; timestamps become ISO strings."""
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return ""
    return str(value).strip()


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        inner = value[1:-1]
        if value[0] == "'":
            return inner.replace("''", "'")
        return inner.replace('\\"', '"').replace("\\\\", "\\")
    return value


def _regex_fields(header: str, fields: Iterable[str]) -> Dict[str, str]:
    found: Dict[str, str] = {}
    for name in fields:
        match = re.search(rf"^[ \t]*{re.escape(name)}[ \t]*:[ \t]*(.+)$", header, re.MULTILINE)
        if not match:
            continue
        value = _strip_quotes(match.group(1))
        if value:
            found[name] = value
    return found


def parse_header(header: str) -> Tuple[Dict[str, Any], bool]:
    """Parse header text. Returns (mapping, strict) where strict=False means YAML failed."""
    try:
        data = yaml.safe_load(header) if header.strip() else {}
    except yaml.YAMLError:
        return {}, False
    if data is None:
        return {}, True
    if not isinstance(data, dict):
        return {}, False
    return data, True


def read_fields(content: str, fields: Iterable[str]) -> Dict[str, str]:
    """Extract non-empty scalar ``fields`` from a file's header.

    Falls back to a per-line scan when the header is not valid YAML, which is
    exactly the situation (e.g. ``title: Fix: crash``) that breaks the CLI.
    """
    fields = tuple(fields)
    doc = split_document(content)
    if not doc.has_header:
        return {}
    data, strict = parse_header(doc.header or "")
    if not strict:
        return _regex_fields(doc.header or "", fields)
    result: Dict[str, str] = {}
    for name in fields:
        value = _coerce_scalar(data.get(name))
        if value:
            result[name] = value
    return result


def yaml_quote(value: str) -> str:
    """Render a scalar the way the beans CLI does.

    Empty -> ``''``; values that would confuse a YAML parser are single-quoted
    with embedded apostrophes doubled; everything else stays plain.
    """
    text = value if value is not None else ""
    if not text:
        return "''"
    if _INDICATOR_START.search(text) or _NEEDS_QUOTES.search(text) or text != text.strip():
        return "'" + text.replace("'", "''") + "'"
    return text


def rewrite_fields(content: str, values: Mapping[str, str]) -> str:
    """Set header keys to ``values``; existing lines are overwritten, missing keys appended.

    Lines other than the given keys and the whole body are preserved verbatim.
    A file without a header gets one prepended.
    """
    doc = split_document(content)
    newline = doc.newline
    header_lines = (doc.header or "").splitlines()
    for key, value in values.items():
        rendered = f"{key}: {yaml_quote(value)}"
        pattern = re.compile(rf"^[ \t]*{re.escape(key)}[ \t]*:")
        for idx, line in enumerate(header_lines):
            if pattern.match(line):
                header_lines[idx] = rendered
                break
        else:
            header_lines.append(rendered)
    while header_lines and not header_lines[-1].strip():
        header_lines.pop()
    header = newline.join(header_lines)
    return f"{OPEN_DELIMITER}{newline}{header}{newline}{OPEN_DELIMITER}{newline}{doc.body}"


def title_needs_quoting(title: str) -> bool:
    """True when a bare ``title:`` value would be misread by a YAML parser."""
    if ": " in title or title.endswith(":"):
        return True
    if re.match(r"""^[{\[\]|>&*!%@`'"]""", title):
        return True
    return " #" in title


def quote_title_line(content: str) -> Optional[str]:
    """Return content with the header title wrapped in double quotes, or None if no change is needed."""
    doc = split_document(content)
    if not doc.has_header:
        return None
    header_lines = (doc.header or "").splitlines(keepends=True)
    for idx, line in enumerate(header_lines):
        ending = line[len(line.rstrip("\r\n")) :]
        match = _TITLE_LINE.match(line.rstrip("\r\n"))
        if not match:
            continue
        value = match.group("value")
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            return None
        if not title_needs_quoting(value):
            return None
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        header_lines[idx] = f'{match.group("key")}"{escaped}"{ending}'
        start = doc.header_offset
        end = start + len(doc.header or "")
        return content[:start] + "".join(header_lines) + content[end:]
    return None


__all__ = [
    "SplitDocument",
    "split_document",
    "parse_header",
    "read_fields",
    "yaml_quote",
    "rewrite_fields",
    "title_needs_quoting",
    "quote_title_line",
]
