import functools
import locale
import logging
import unicodedata
from dataclasses import dataclass, field

import pandas as pd

from field_span_codec import (
    UNREPRESENTABLE,
    CellUpdate,
    ParsedText,
    apply_updates,
    as_cell_update,
    cell_text,
    parse_spans,
    serialize_rows,
)
from grid_view import (
    clamp_offset,
    column_count,
    is_row_empty,
    pad_row,
    split_grid,
    trim_trailing_empty_rows,
)
from type_estimator import (
    column_types,
    estimate_column_type,
    leading_numbers,
    parse_dates,
)

logger = logging.getLogger(__name__)


@dataclass
class EditOutcome:
    rows: list[list[str]]
    changed: bool = False
    trimmed: bool = False
    created_row: bool = False
    created_col: bool = False

    @property
    def structural(self) -> bool:
        return self.trimmed or self.created_row or self.created_col


@dataclass
class MutationResult:
    changed: bool = False
    structural: bool = False
    applied: list[CellUpdate] = field(default_factory=list)


# ----- cell writes (virtual row / virtual cell rules) -----
def write_cells(rows: list[list[str]], writes) -> EditOutcome:
    """Apply cell writes in place.

    An empty value aimed at a cell that does not exist is ignored. A non-empty
    value creates the row and any cells needed to reach it. When a write lands
    on the last row (or beyond), trailing all-empty rows are trimmed.
    """
    outcome = EditOutcome(rows)
    touched_last = False
    for raw in writes:
        update = as_cell_update(raw)
        row, col, value = update.row, update.col, update.value
        if row < 0 or col < 0:
            continue
        row_exists = row < len(rows)
        col_exists = row_exists and col < len(rows[row])
        if value == "" and not col_exists:
            continue
        if row >= len(rows) - 1:
            touched_last = True
        if not row_exists:
            while len(rows) <= row:
                rows.append([])
            outcome.created_row = True
        if col >= len(rows[row]):
            rows[row].extend([""] * (col + 1 - len(rows[row])))
            outcome.created_col = True
        if rows[row][col] != value:
            rows[row][col] = value
            outcome.changed = True

    if touched_last:
        while rows and is_row_empty(rows[-1]):
            rows.pop()
            outcome.trimmed = True
    return outcome


# ----- row / column structure -----
def normalize_indices(indices, length: int) -> list[int]:
    picked = set()
    for idx in indices or []:
        if isinstance(idx, bool) or not isinstance(idx, int):
            continue
        if 0 <= idx < length:
            picked.add(idx)
    return sorted(picked)


def insert_rows(rows, index: int, count: int = 1) -> list[list[str]]:
    out = [list(r) for r in rows]
    if count <= 0:
        return out
    index = max(0, min(index, len(out)))
    width = max(1, column_count(out))
    out[index:index] = [[""] * width for _ in range(count)]
    return out


def delete_rows(rows, indices) -> list[list[str]]:
    out = [list(r) for r in rows]
    for idx in sorted(normalize_indices(indices, len(out)), reverse=True):
        del out[idx]
    return out


def insert_columns(rows, index: int, count: int = 1) -> list[list[str]]:
    out = [list(r) for r in rows]
    if count <= 0:
        return out
    index = max(0, index)
    for row in out:
        # shorter rows are conceptually padded already
        if index < len(row):
            row[index:index] = [""] * count
    return out


def delete_columns(rows, indices) -> list[list[str]]:
    out = [list(r) for r in rows]
    for idx in sorted(normalize_indices(indices, column_count(out)), reverse=True):
        for row in out:
            if idx < len(row):
                del row[idx]
    return out


def reorder_index_order(length: int, indices, before_index: int) -> list[int]:
    selected = normalize_indices(indices, length)
    order = list(range(length))
    if not selected:
        return order
    before = max(0, min(before_index, length))
    chosen = set(selected)
    remaining = [i for i in order if i not in chosen]
    insert_at = before - sum(1 for i in selected if i < before)
    return remaining[:insert_at] + selected + remaining[insert_at:]


def reorder_rows(rows, indices, before_index: int) -> list[list[str]]:
    order = reorder_index_order(len(rows), indices, before_index)
    return [list(rows[i]) for i in order]


def reorder_columns(rows, indices, before_index: int) -> list[list[str]]:
    width = column_count(rows)
    order = reorder_index_order(width, indices, before_index)
    out = []
    for row in rows:
        padded = pad_row(row, width)
        moved = [padded[i] for i in order]
        while len(moved) > len(row) and moved[-1] == "":
            moved.pop()
        out.append(moved)
    return out


# ----- sort -----
def _collation_key(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()
    return locale.strxfrm(base)


@dataclass(frozen=True)
class SortKey:
    text: str
    date: object = None
    number: float | None = None
    collation: str = ""


def sort_keys(values) -> list[SortKey]:
    """Sort keys for a whole column, parsing dates and numbers in one pass each."""
    texts = [cell_text(v).strip() for v in values]
    dates = parse_dates(texts).tolist()
    numbers = leading_numbers(texts).tolist()
    keys = []
    for text, date, number in zip(texts, dates, numbers):
        if not text:
            keys.append(SortKey(""))
            continue
        keys.append(
            SortKey(
                text,
                None if pd.isna(date) else date,
                None if pd.isna(number) else number,
                _collation_key(text),
            )
        )
    return keys


def _sign(a, b) -> int:
    return (a > b) - (a < b)


def compare_keys(a: SortKey, b: SortKey) -> int:
    """Ascending comparison of two non-empty cells: dates, then numbers, then text."""
    if a.date is not None and b.date is not None:
        return _sign(a.date, b.date)
    if a.number is not None and b.number is not None:
        return _sign(a.number, b.number)
    return _sign(a.collation, b.collation)


def compare_sort_keys(a: SortKey, b: SortKey, ascending: bool = True) -> int:
    if not a.text and not b.text:
        return 0
    # empties trail in both directions
    if not a.text:
        return 1
    if not b.text:
        return -1
    diff = compare_keys(a, b)
    return diff if ascending else -diff


def sort_order(values, ascending: bool = True) -> list[int]:
    keys = sort_keys(values)

    def cmp(i, j):
        return compare_sort_keys(keys[i], keys[j], ascending)

    # sorted() is stable, so ties keep their original order
    return sorted(range(len(keys)), key=functools.cmp_to_key(cmp))


def _sanitize_cell(value) -> str:
    text = cell_text(value)
    # no literal nan token survives a sort, whatever its case
    return "" if text.lower() == "nan" else text


def sanitize_frame(frame: pd.DataFrame) -> pd.DataFrame:
    clean = frame.astype(object).where(frame.notna(), "")
    return clean.map(_sanitize_cell)


def sort_rows(rows, index: int, ascending: bool = True, header: bool = False, hidden_rows: int = 0):
    trimmed = trim_trailing_empty_rows([list(r) for r in rows])
    split = split_grid(trimmed, header, hidden_rows)
    body = split.body
    head = [split.header] if split.header is not None else []
    if not body:
        return split.prefix + head

    frame = pd.DataFrame(body)
    lengths = [len(r) for r in body]
    if index in frame.columns:
        keys = frame[index].tolist()
    else:
        keys = [""] * len(body)
    order = sort_order(keys, ascending)
    ordered = sanitize_frame(frame.iloc[order]).values.tolist()
    sorted_body = [cells[: lengths[i]] for i, cells in zip(order, ordered)]
    return split.prefix + head + sorted_body


# ----- header inference -----
def effective_header(rows, hidden_rows: int = 0, override: bool | None = None) -> bool:
    if override is not None:
        return bool(override)
    rows = trim_trailing_empty_rows(rows)
    offset = clamp_offset(hidden_rows, len(rows))
    if not rows or offset >= len(rows):
        return False
    header = rows[offset]
    body = rows[offset + 1:]
    if not body:
        return True
    width = max(len(header), column_count(body))
    body_types = column_types(body, width)
    header_types = [
        estimate_column_type([header[i] if i < len(header) else ""]) for i in range(width)
    ]
    return any(h != b for h, b in zip(header_types, body_types))


class GridMutator:
    """Applies grid operations to a document's text under one separator.

    Spans are parsed afresh from the document for every call. Pure value edits
    are patched in place; anything that creates, removes or moves cells
    regenerates the whole text. Either way the document is replaced once.
    """

    def __init__(self, document, separator: str = ","):
        self.document = document
        self.separator = separator

    def parse(self) -> ParsedText:
        return parse_spans(self.document.text, self.separator)

    def rows(self) -> list[list[str]]:
        return self.parse().rows

    # ---------- commit helpers ----------
    def _regenerate(self, parsed: ParsedText, rows) -> bool:
        text = serialize_rows(
            rows, self.separator, parsed.line_terminator, parsed.trailing_newline
        )
        return self.document.replace(text)

    def _patch(self, parsed: ParsedText, rows, updates) -> bool:
        patched = apply_updates(self.document.text, self.separator, updates, parsed)
        if patched is UNREPRESENTABLE:
            logger.debug("Patch not representable; regenerating document")
            return self._regenerate(parsed, rows)
        return self.document.replace(patched)

    def _restructure(self, parsed: ParsedText, new_rows, description: str) -> MutationResult:
        new_rows = trim_trailing_empty_rows(new_rows)
        if new_rows == parsed.rows:
            return MutationResult()
        self._regenerate(parsed, new_rows)
        logger.info(description)
        return MutationResult(changed=True, structural=True)

    # ---------- value edits ----------
    def _apply_writes(self, writes: list[CellUpdate]) -> MutationResult:
        parsed = self.parse()
        rows = [list(r) for r in parsed.rows]
        outcome = write_cells(rows, writes)
        if outcome.structural:
            self._regenerate(parsed, outcome.rows)
            return MutationResult(True, True, list(writes))
        if not outcome.changed:
            return MutationResult()
        patchable = [w for w in writes if parsed.span_at(w.row, w.col) is not None]
        self._patch(parsed, outcome.rows, patchable)
        return MutationResult(True, False, patchable)

    def edit(self, row: int, col: int, value) -> MutationResult:
        result = self._apply_writes([CellUpdate(row, col, cell_text(value))])
        if result.changed:
            logger.info("Updated row %d, column %d", row + 1, col + 1)
        return result

    def replace_cells(self, updates) -> MutationResult:
        parsed = self.parse()
        rows = [list(r) for r in parsed.rows]
        accepted: dict[tuple[int, int], CellUpdate] = {}
        for raw in updates or []:
            update = as_cell_update(raw)
            if parsed.span_at(update.row, update.col) is None:
                continue
            key = (update.row, update.col)
            if parsed.rows[update.row][update.col] == update.value:
                accepted.pop(key, None)
            else:
                accepted[key] = update
        if not accepted:
            return MutationResult()

        applied = list(accepted.values())
        for update in applied:
            rows[update.row][update.col] = update.value
        last = len(rows) - 1
        if any(u.row == last for u in applied) and is_row_empty(rows[last]):
            self._regenerate(parsed, trim_trailing_empty_rows(rows))
            return MutationResult(True, True, applied)
        self._patch(parsed, rows, applied)
        logger.info("Replaced %d cell(s)", len(applied))
        return MutationResult(True, False, applied)

    def paste(self, block: list[list[str]], anchor_row: int, anchor_col: int, selection=None):
        """Write a block of values at the anchor. Returns (result, bounds)."""
        anchor_row = max(0, anchor_row)
        anchor_col = max(0, anchor_col)
        writes = []
        if len(block) == 1 and len(block[0]) == 1 and selection is not None:
            r0, c0, r1, c1 = selection
            r0, r1 = sorted((max(0, r0), max(0, r1)))
            c0, c1 = sorted((max(0, c0), max(0, c1)))
            value = block[0][0]
            for r in range(r0, r1 + 1):
                for c in range(c0, c1 + 1):
                    writes.append(CellUpdate(r, c, value))
            bounds = (r0, c0, r1, c1)
        else:
            for r, cells in enumerate(block):
                for c, value in enumerate(cells):
                    writes.append(CellUpdate(anchor_row + r, anchor_col + c, value))
            width = column_count(block)
            bounds = (
                anchor_row,
                anchor_col,
                anchor_row + max(0, len(block) - 1),
                anchor_col + max(0, width - 1),
            )
        if not writes:
            return MutationResult(), bounds
        result = self._apply_writes(writes)
        if result.changed:
            logger.info("Pasted %d cell(s) at row %d, column %d", len(writes), bounds[0] + 1, bounds[1] + 1)
        return result, bounds

    # ---------- structure ----------
    def insert_rows(self, index: int, count: int = 1) -> MutationResult:
        if count <= 0:
            return MutationResult()
        parsed = self.parse()
        return self._restructure(
            parsed, insert_rows(parsed.rows, index, count), f"Inserted {count} row(s) at {index}"
        )

    def delete_rows(self, indices) -> MutationResult:
        parsed = self.parse()
        if not normalize_indices(indices, len(parsed.rows)):
            return MutationResult()
        return self._restructure(parsed, delete_rows(parsed.rows, indices), "Deleted row(s)")

    def insert_columns(self, index: int, count: int = 1) -> MutationResult:
        if count <= 0:
            return MutationResult()
        parsed = self.parse()
        return self._restructure(
            parsed,
            insert_columns(parsed.rows, index, count),
            f"Inserted {count} column(s) at {index}",
        )

    def delete_columns(self, indices) -> MutationResult:
        parsed = self.parse()
        if not normalize_indices(indices, column_count(parsed.rows)):
            return MutationResult()
        return self._restructure(parsed, delete_columns(parsed.rows, indices), "Deleted column(s)")

    def reorder_rows(self, indices, before_index: int) -> MutationResult:
        parsed = self.parse()
        if not normalize_indices(indices, len(parsed.rows)):
            return MutationResult()
        return self._restructure(
            parsed, reorder_rows(parsed.rows, indices, before_index), "Reordered row(s)"
        )

    def reorder_columns(self, indices, before_index: int) -> MutationResult:
        parsed = self.parse()
        if not normalize_indices(indices, column_count(parsed.rows)):
            return MutationResult()
        return self._restructure(
            parsed, reorder_columns(parsed.rows, indices, before_index), "Reordered column(s)"
        )

    def sort_column(self, index: int, ascending: bool = True, header: bool = False, hidden_rows: int = 0):
        if index < 0:
            return MutationResult()
        parsed = self.parse()
        new_rows = sort_rows(parsed.rows, index, ascending, header, hidden_rows)
        return self._restructure(
            parsed,
            new_rows,
            f"Sorted column {index + 1} ({'A-Z' if ascending else 'Z-A'})",
        )
