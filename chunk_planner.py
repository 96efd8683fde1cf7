import html
import logging
from dataclasses import dataclass, field

from grid_view import column_count, split_grid, trim_trailing_empty_rows, visible_grid
from messages import ChunkData

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1000
MAX_LOCAL_CHUNKS = 10
MAX_CELL_WIDTH = 100


@dataclass(frozen=True)
class Chunk:
    start: int
    end: int
    html: str
    virtual: bool = False


@dataclass
class RenderPlan:
    table_html: str
    chunks: list[Chunk] = field(default_factory=list)
    next_chunk_start: int | None = None
    total_rows: int = 0
    body_start: int = 0
    header: bool = False
    chunked: bool = False

    @property
    def has_more_chunks(self) -> bool:
        return self.next_chunk_start is not None


def escape_html(text) -> str:
    return html.escape(text or "", quote=True)


def compute_column_widths(rows, num_columns: int | None = None) -> list[int]:
    if num_columns is None:
        num_columns = column_count(rows)
    widths = [0] * num_columns
    for row in rows:
        for i, cell in enumerate(row[:num_columns]):
            longest = max((len(part) for part in (cell or "").split("\n")), default=0)
            if longest > widths[i]:
                widths[i] = longest
    return widths


class ChunkPlanner:
    """Splits the visible body into fixed-size chunks of rendered rows.

    The first chunk is part of the initial table. Up to max_local_chunks more
    are pre-rendered for the client to pull; the rest are served one at a time
    through the remote cursor. When chunking, the virtual row is the final
    chunk; otherwise it closes the initial table.
    """

    def __init__(
        self,
        rows,
        header: bool = False,
        hidden_rows: int = 0,
        serial_index: bool = True,
        chunk_size: int = CHUNK_SIZE,
        max_local_chunks: int = MAX_LOCAL_CHUNKS,
    ):
        split = split_grid(trim_trailing_empty_rows(rows), header, hidden_rows)
        self.header_row = split.header
        # body rows followed by the phantom row that backs the virtual chunk
        self.grid = visible_grid(split.body)
        self.body_start = split.body_start
        self.serial_index = serial_index
        self.chunk_size = max(1, int(chunk_size))
        self.max_local_chunks = max(0, int(max_local_chunks))
        visible = ([self.header_row] if self.header_row is not None else []) + self.grid[:-1]
        self.num_columns = max(1, column_count(visible))
        self.widths = compute_column_widths(visible, self.num_columns)

    @property
    def total_rows(self) -> int:
        return len(self.grid) - 1

    @property
    def chunked(self) -> bool:
        return self.total_rows > self.chunk_size

    # ---------- rendering ----------
    def _cell_style(self, col: int) -> str:
        width = min(self.widths[col] if col < len(self.widths) else 0, MAX_CELL_WIDTH)
        return f"min-width:{width}ch;max-width:{MAX_CELL_WIDTH}ch"

    def _serial_cell(self, abs_row: int, label: str, tag: str = "td") -> str:
        if not self.serial_index:
            return ""
        return f'<{tag} tabindex="0" class="serial" data-row="{abs_row}" data-col="-1">{label}</{tag}>'

    def render_row(self, index: int, cells=None) -> str:
        abs_row = self.body_start + index
        cells = cells or []
        parts = [self._serial_cell(abs_row, str(index + 1))]
        for c in range(self.num_columns):
            value = escape_html(cells[c] if c < len(cells) else "")
            parts.append(
                f'<td tabindex="0" data-row="{abs_row}" data-col="{c}" style="{self._cell_style(c)}">{value}</td>'
            )
        return "<tr>" + "".join(parts) + "</tr>"

    def render_header(self) -> str:
        if self.header_row is None:
            return ""
        abs_row = self.body_start - 1
        parts = [self._serial_cell(abs_row, "", tag="th")]
        for c in range(self.num_columns):
            value = escape_html(self.header_row[c] if c < len(self.header_row) else "")
            parts.append(
                f'<th tabindex="0" data-row="{abs_row}" data-col="{c}" style="{self._cell_style(c)}">{value}</th>'
            )
        return "<thead><tr>" + "".join(parts) + "</tr></thead>"

    def render_virtual_row(self) -> str:
        return self.render_row(self.total_rows, self.grid[self.total_rows])

    # ---------- chunks ----------
    def render_chunk(self, start: int) -> Chunk | None:
        if start < 0 or start > self.total_rows:
            return None
        if start == self.total_rows:
            return Chunk(start, start + 1, self.render_virtual_row(), virtual=True)
        end = min(self.total_rows, start + self.chunk_size)
        body = "".join(self.render_row(i, self.grid[i]) for i in range(start, end))
        return Chunk(start, end, body)

    def next_start_after(self, chunk: Chunk) -> int | None:
        if chunk.virtual:
            return None
        return chunk.end

    def plan(self) -> RenderPlan:
        first_end = self.chunk_size if self.chunked else self.total_rows
        rows_html = "".join(self.render_row(i, self.grid[i]) for i in range(first_end))
        if not self.chunked:
            rows_html += self.render_virtual_row()
        table_html = f"<table>{self.render_header()}<tbody>{rows_html}</tbody></table>"

        plan = RenderPlan(
            table_html=table_html,
            total_rows=self.total_rows,
            body_start=self.body_start,
            header=self.header_row is not None,
            chunked=self.chunked,
        )
        if not self.chunked:
            return plan

        start = self.chunk_size
        while start < self.total_rows and len(plan.chunks) < self.max_local_chunks:
            chunk = self.render_chunk(start)
            plan.chunks.append(chunk)
            start = chunk.end
        if start >= self.total_rows:
            plan.chunks.append(self.render_chunk(self.total_rows))
        else:
            plan.next_chunk_start = start
        logger.debug(
            "Planned %d local chunk(s) for %d rows; remote cursor %s",
            len(plan.chunks),
            self.total_rows,
            plan.next_chunk_start,
        )
        return plan

    def chunk_data(self, start: int, request_id: int) -> ChunkData:
        chunk = self.render_chunk(start) if self.chunked else None
        if chunk is None:
            return ChunkData(request_id=request_id, start=start, html="", next_start=None, done=True)
        next_start = self.next_start_after(chunk)
        return ChunkData(
            request_id=request_id,
            start=chunk.start,
            html=chunk.html,
            next_start=next_start,
            done=next_start is None,
        )
