import logging
import threading

from chunk_planner import CHUNK_SIZE, MAX_LOCAL_CHUNKS, ChunkPlanner, escape_html
from document_state import DocumentStateStore
from field_span_codec import parse_rows
from grid_mutator import GridMutator, MutationResult, effective_header
from messages import (
    CLIENT_MESSAGES,
    ChangeSeparator,
    DeleteColumns,
    DeleteRows,
    EditCell,
    Error,
    FindMatches,
    InsertColumns,
    InsertRows,
    MessageError,
    PasteApplied,
    PasteCells,
    Render,
    ReorderColumns,
    ReorderRows,
    ReplaceCells,
    ReplaceMatches,
    RequestChunk,
    Save,
    SetHiddenRows,
    SortColumn,
    ToggleHeader,
    ToggleSerialIndex,
    UpdateCell,
    parse_client_message,
)
from query_sequencer import INVALID_REGEX_STATUS, execute_find, replacement_updates
from separator_resolver import (
    SeparatorResolver,
    SeparatorSettings,
    format_separator,
    parse_separator_input,
)

logger = logging.getLogger(__name__)

PASTE_SEPARATOR = "\t"


def run_in_thread(fn):
    thread = threading.Thread(target=fn, daemon=True)
    thread.start()
    return thread


class EditorSession:
    """One client view of one document.

    Every mutation runs under the session lock and the document's rewrite
    flag, so two operations never interleave and external change
    notifications are ignored until the rewrite finishes. Find runs off the
    caller's thread against a snapshot of the text.
    """

    def __init__(
        self,
        document,
        send_fn,
        store: DocumentStateStore | None = None,
        settings: SeparatorSettings | None = None,
        resolver: SeparatorResolver | None = None,
        manager=None,
        file_handler=None,
        chunk_size: int = CHUNK_SIZE,
        max_local_chunks: int = MAX_LOCAL_CHUNKS,
        run_async=run_in_thread,
    ):
        self.document = document
        self.send_fn = send_fn
        self.store = store if store is not None else DocumentStateStore()
        self.settings = settings or SeparatorSettings()
        self.resolver = resolver or SeparatorResolver()
        self.manager = manager
        self.file_handler = file_handler
        self.chunk_size = chunk_size
        self.max_local_chunks = max_local_chunks
        self.run_async = run_async
        self.planner: ChunkPlanner | None = None
        self.planner_version: int | None = None
        self._lock = threading.Lock()

    @property
    def identity(self) -> str:
        return self.document.identity

    # ---------- derived state ----------
    @property
    def separator(self) -> str:
        return self.resolver.resolve(
            self.document, self.settings, self.store.separator_override(self.identity)
        )

    @property
    def hidden_rows(self) -> int:
        return self.store.hidden_rows(self.identity)

    @property
    def serial_index(self) -> bool:
        return self.store.serial_index(self.identity)

    def rows(self) -> list[list[str]]:
        return parse_rows(self.document.text, self.separator)

    def header(self, rows=None) -> bool:
        if rows is None:
            rows = self.rows()
        return effective_header(rows, self.hidden_rows, self.store.header_override(self.identity))

    def mutator(self) -> GridMutator:
        return GridMutator(self.document, self.separator)

    # ---------- rendering ----------
    def _build_planner(self, rows, header: bool) -> ChunkPlanner:
        self.planner = ChunkPlanner(
            rows,
            header=header,
            hidden_rows=self.hidden_rows,
            serial_index=self.serial_index,
            chunk_size=self.chunk_size,
            max_local_chunks=self.max_local_chunks,
        )
        self.planner_version = self.document.version
        return self.planner

    def render(self) -> Render:
        rows = self.rows()
        plan = self._build_planner(rows, self.header(rows)).plan()
        return Render(
            html=plan.table_html,
            separator=format_separator(self.separator),
            header=plan.header,
            serial_index=self.serial_index,
            hidden_rows=self.hidden_rows,
            chunks=tuple(
                {"start": c.start, "end": c.end, "html": c.html, "virtual": c.virtual}
                for c in plan.chunks
            ),
            next_chunk_start=plan.next_chunk_start,
            total_rows=plan.total_rows,
        )

    def send_render(self) -> None:
        self.send_fn(self.render())

    def refresh(self) -> None:
        if self.manager is not None:
            self.manager.refresh(self.identity)
        else:
            self.send_render()

    def _broadcast(self, message) -> None:
        if self.manager is not None:
            self.manager.broadcast(self.identity, message)
        else:
            self.send_fn(message)

    # ---------- dispatch ----------
    def handle(self, payload) -> None:
        """Validate a raw client payload and run it; bad payloads get an error reply."""
        try:
            message = parse_client_message(payload)
        except MessageError as exc:
            logger.warning("Rejected client message: %s", exc)
            self.send_fn(Error(str(exc)))
            return
        self.dispatch(message)

    def dispatch(self, message) -> None:
        getattr(self, _HANDLERS[type(message)])(message)

    def _mutate(self, operation) -> MutationResult:
        with self._lock, self.document.rewriting():
            result = operation(self.mutator())
        self._publish(result)
        return result

    def _publish(self, result: MutationResult) -> None:
        if not result.changed:
            return
        if result.structural:
            self.refresh()
            return
        for update in result.applied:
            self._broadcast(
                UpdateCell(update.row, update.col, update.value, rendered=escape_html(update.value))
            )

    # ---------- handlers ----------
    def _on_edit_cell(self, msg: EditCell):
        self._mutate(lambda m: m.edit(msg.row, msg.col, msg.value))

    def _on_replace_cells(self, msg: ReplaceCells):
        self._mutate(lambda m: m.replace_cells(msg.replacements))

    def _on_insert_rows(self, msg: InsertRows):
        self._mutate(lambda m: m.insert_rows(msg.index, msg.count))

    def _on_delete_rows(self, msg: DeleteRows):
        self._mutate(lambda m: m.delete_rows(msg.indices))

    def _on_insert_columns(self, msg: InsertColumns):
        self._mutate(lambda m: m.insert_columns(msg.index, msg.count))

    def _on_delete_columns(self, msg: DeleteColumns):
        self._mutate(lambda m: m.delete_columns(msg.indices))

    def _on_reorder_rows(self, msg: ReorderRows):
        self._mutate(lambda m: m.reorder_rows(msg.indices, msg.before_index))

    def _on_reorder_columns(self, msg: ReorderColumns):
        self._mutate(lambda m: m.reorder_columns(msg.indices, msg.before_index))

    def _on_sort_column(self, msg: SortColumn):
        def sort(m):
            header = self.header(m.rows())
            return m.sort_column(msg.index, msg.ascending, header, self.hidden_rows)

        self._mutate(sort)

    def _on_paste_cells(self, msg: PasteCells):
        block = parse_rows(msg.text, PASTE_SEPARATOR) or [[""]]
        bounds = []

        def paste(m):
            result, box = m.paste(block, msg.anchor_row, msg.anchor_col, msg.selection)
            bounds.append(box)
            return result

        self._mutate(paste)
        self.send_fn(PasteApplied(*bounds[0]))

    def _on_request_chunk(self, msg: RequestChunk):
        if self.planner is None:
            self.render()
        elif self.planner_version != self.document.version:
            # value edits only send updateCell; keep the layout the client has
            self._build_planner(self.rows(), self.planner.header_row is not None)
        self.send_fn(self.planner.chunk_data(msg.start, msg.request_id))

    def _on_find_matches(self, msg: FindMatches):
        text, _version = self.document.snapshot()
        separator = self.separator
        hidden = self.hidden_rows

        def work():
            self.send_fn(execute_find(msg.request_id, msg.query, msg.options, text, separator, hidden))

        self.run_async(work)

    def _on_replace_matches(self, msg: ReplaceMatches):
        updates, invalid = replacement_updates(
            self.document.text,
            self.separator,
            msg.query,
            msg.replacement,
            msg.options,
            preserve_case=msg.preserve_case,
            replace_all=msg.replace_all,
            hidden_rows=self.hidden_rows,
            row=msg.row,
            col=msg.col,
        )
        if invalid:
            self.send_fn(Error(INVALID_REGEX_STATUS))
            return
        if updates:
            self._mutate(lambda m: m.replace_cells(updates))

    def _on_save(self, msg: Save):
        if self.file_handler is None:
            self.send_fn(Error("Document has no file to save to"))
            return
        try:
            self.file_handler.save(self.document)
        except OSError as exc:
            logger.warning("Save failed for %s: %s", self.identity, exc)
            self.send_fn(Error(f"Save failed: {exc}"))

    def _on_toggle_header(self, msg: ToggleHeader):
        self.toggle_header()

    def _on_toggle_serial_index(self, msg: ToggleSerialIndex):
        self.toggle_serial_index()

    def _on_change_separator(self, msg: ChangeSeparator):
        self.change_separator(msg.text)

    def _on_set_hidden_rows(self, msg: SetHiddenRows):
        self.set_hidden_rows(msg.count)

    # ---------- view commands ----------
    def toggle_header(self) -> bool:
        value = not self.header()
        self.store.set_header_override(self.identity, value)
        logger.info("Header %s for %s", "on" if value else "off", self.identity)
        self.refresh()
        return value

    def toggle_serial_index(self) -> bool:
        value = not self.serial_index
        self.store.set_serial_index(self.identity, value)
        self.refresh()
        return value

    def change_separator(self, text: str) -> str | None:
        sep = parse_separator_input(text)
        if text and sep is None:
            self.send_fn(Error(f"Invalid separator: {text!r}"))
            return None
        self.store.set_separator_override(self.identity, sep)
        logger.info("Separator override for %s: %r", self.identity, format_separator(sep))
        self.refresh()
        return sep

    def set_hidden_rows(self, count) -> int:
        value = self.store.set_hidden_rows(self.identity, count)
        self.refresh()
        return value


_HANDLERS = {
    EditCell: "_on_edit_cell",
    ReplaceCells: "_on_replace_cells",
    FindMatches: "_on_find_matches",
    ReplaceMatches: "_on_replace_matches",
    InsertRows: "_on_insert_rows",
    DeleteRows: "_on_delete_rows",
    InsertColumns: "_on_insert_columns",
    DeleteColumns: "_on_delete_columns",
    ReorderRows: "_on_reorder_rows",
    ReorderColumns: "_on_reorder_columns",
    SortColumn: "_on_sort_column",
    RequestChunk: "_on_request_chunk",
    PasteCells: "_on_paste_cells",
    Save: "_on_save",
    ToggleHeader: "_on_toggle_header",
    ToggleSerialIndex: "_on_toggle_serial_index",
    ChangeSeparator: "_on_change_separator",
    SetHiddenRows: "_on_set_hidden_rows",
}

_unhandled = set(CLIENT_MESSAGES.values()) - set(_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No handler for message types: {sorted(c.type for c in _unhandled)}")
