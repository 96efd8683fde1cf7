from dataclasses import dataclass


def is_row_empty(row) -> bool:
    if not row:
        return True
    return all((v or "") == "" for v in row)


def trim_trailing_empty_rows(rows: list[list[str]]) -> list[list[str]]:
    end = len(rows)
    while end > 0 and is_row_empty(rows[end - 1]):
        end -= 1
    return rows[:end]


def column_count(rows) -> int:
    return max((len(r) for r in rows), default=0)


def pad_row(row: list[str], width: int) -> list[str]:
    if len(row) >= width:
        return list(row)
    return list(row) + [""] * (width - len(row))


def clamp_offset(hidden_rows, total: int) -> int:
    try:
        n = int(hidden_rows)
    except (TypeError, ValueError):
        n = 0
    return max(0, min(n, total))


def visible_grid(rows: list[list[str]]) -> list[list[str]]:
    """Real rows plus the phantom trailing row; computed on read, never stored."""
    real = trim_trailing_empty_rows(rows)
    width = max(1, column_count(real))
    return [list(r) for r in real] + [[""] * width]


@dataclass
class GridSplit:
    prefix: list[list[str]]
    header: list[str] | None
    body: list[list[str]]
    offset: int

    @property
    def body_start(self) -> int:
        """Absolute row index of the first body row."""
        return self.offset + (1 if self.header is not None else 0)


def split_grid(rows: list[list[str]], header: bool, hidden_rows: int) -> GridSplit:
    offset = clamp_offset(hidden_rows, len(rows))
    prefix = rows[:offset]
    if header and offset < len(rows):
        return GridSplit(prefix, rows[offset], rows[offset + 1:], offset)
    return GridSplit(prefix, None, rows[offset:], offset)
