import re
from dataclasses import dataclass, field
from typing import Iterable

import pandas as pd

DEFAULT_LINE_TERMINATOR = "\r\n"


class _Unrepresentable:
    def __repr__(self):
        return "UNREPRESENTABLE"

    def __bool__(self):
        return False


# Returned by apply_updates when a target cell has no span; callers regenerate instead.
UNREPRESENTABLE = _Unrepresentable()


@dataclass(frozen=True)
class FieldSpan:
    start: int
    end: int
    quoted: bool


@dataclass(frozen=True)
class CellUpdate:
    row: int
    col: int
    value: str


@dataclass
class ParsedText:
    rows: list[list[str]] = field(default_factory=list)
    spans: list[list[FieldSpan]] = field(default_factory=list)
    line_terminator: str | None = None
    trailing_newline: bool = False

    def span_at(self, row: int, col: int) -> FieldSpan | None:
        if row < 0 or row >= len(self.spans):
            return None
        cells = self.spans[row]
        if col < 0 or col >= len(cells):
            return None
        return cells[col]


_pattern_cache: dict[str, re.Pattern] = {}


def _field_end_pattern(sep: str) -> re.Pattern:
    pattern = _pattern_cache.get(sep)
    if pattern is None:
        pattern = re.compile("[" + re.escape(sep) + "\r\n]")
        _pattern_cache[sep] = pattern
    return pattern


def parse_spans(text: str, separator: str = ",") -> ParsedText:
    """Single left-to-right scan producing cell values and their source spans.

    A quote only opens a quoted field at the field's first character. Inside a
    quoted field a doubled quote is an escaped quote and CR/LF are literal.
    Outside quotes CR, LF and CRLF end the row. A terminator at the very end
    of the text does not start another row.
    """
    parsed = ParsedText()
    if not text:
        return parsed
    if not separator or len(separator) != 1 or separator in '"\r\n':
        separator = ","
    end_re = _field_end_pattern(separator)
    n = len(text)
    i = 0
    row_values: list[str] = []
    row_spans: list[FieldSpan] = []

    while True:
        start = i
        if i < n and text[i] == '"':
            quoted = True
            i += 1
            parts = []
            while True:
                close = text.find('"', i)
                if close == -1:
                    parts.append(text[i:])
                    i = n
                    break
                parts.append(text[i:close])
                if close + 1 < n and text[close + 1] == '"':
                    parts.append('"')
                    i = close + 2
                    continue
                i = close + 1
                break
            # stray characters after the closing quote stay part of the value
            m = end_re.search(text, i)
            stop = m.start() if m else n
            parts.append(text[i:stop])
            i = stop
            value = "".join(parts)
        else:
            quoted = False
            m = end_re.search(text, i)
            stop = m.start() if m else n
            value = text[i:stop]
            i = stop

        row_values.append(value)
        row_spans.append(FieldSpan(start, i, quoted))

        if i >= n:
            parsed.rows.append(row_values)
            parsed.spans.append(row_spans)
            break

        ch = text[i]
        if ch == separator:
            i += 1
            continue

        if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
            terminator = "\r\n"
        else:
            terminator = ch
        if parsed.line_terminator is None:
            parsed.line_terminator = terminator
        i += len(terminator)
        parsed.rows.append(row_values)
        parsed.spans.append(row_spans)
        row_values = []
        row_spans = []
        if i >= n:
            parsed.trailing_newline = True
            break

    return parsed


def parse_rows(text: str, separator: str = ",") -> list[list[str]]:
    return parse_spans(text, separator).rows


def cell_text(value) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value)


def needs_quotes(value: str, separator: str) -> bool:
    return any(ch in value for ch in ('"', "\r", "\n", separator))


def encode_field(value, separator: str, quoted: bool = False) -> str:
    value = cell_text(value)
    if quoted or needs_quotes(value, separator):
        return '"' + value.replace('"', '""') + '"'
    return value


def serialize_rows(
    rows: Iterable[Iterable],
    separator: str = ",",
    line_terminator: str | None = None,
    trailing_newline: bool = False,
) -> str:
    terminator = line_terminator or DEFAULT_LINE_TERMINATOR
    lines = [separator.join(encode_field(v, separator) for v in row) for row in rows]
    if not lines:
        return ""
    out = terminator.join(lines)
    if trailing_newline:
        out += terminator
    return out


def as_cell_update(update) -> CellUpdate:
    if isinstance(update, CellUpdate):
        return update
    if isinstance(update, dict):
        return CellUpdate(int(update["row"]), int(update["col"]), cell_text(update["value"]))
    row, col, value = update
    return CellUpdate(int(row), int(col), cell_text(value))


def apply_updates(text: str, separator: str, updates, parsed: ParsedText | None = None):
    """Patch cell values in place, leaving every untouched byte as it was.

    Returns the patched text, the original text when nothing changes, or
    UNREPRESENTABLE when any target cell has no span in the text.
    """
    if parsed is None:
        parsed = parse_spans(text, separator)
    edits: dict[tuple[int, int], tuple[int, int, str]] = {}
    for raw in updates:
        update = as_cell_update(raw)
        span = parsed.span_at(update.row, update.col)
        if span is None:
            return UNREPRESENTABLE
        encoded = encode_field(update.value, separator, span.quoted)
        key = (update.row, update.col)
        if encoded == text[span.start:span.end]:
            edits.pop(key, None)
            continue
        edits[key] = (span.start, span.end, encoded)

    if not edits:
        return text

    pieces = []
    cursor = len(text)
    for start, end, encoded in sorted(edits.values(), key=lambda e: e[0], reverse=True):
        pieces.append(text[end:cursor])
        pieces.append(encoded)
        cursor = start
    pieces.append(text[:cursor])
    return "".join(reversed(pieces))
