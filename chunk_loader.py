import logging
from collections import deque

from messages import ChunkData, RequestChunk
from sequencing import SequenceNumber

logger = logging.getLogger(__name__)

# Upper bound on chunk pulls for one ensure_rendered target.
MAX_ATTEMPTS = 200


class ChunkLoader:
    """Client side of the chunk stream.

    Local chunks are drained first, strictly in order. Once they run out the
    loader asks the remote cursor for the next chunk, keeping at most one
    request in flight. A response is accepted only when both its request id
    and its start match the pending request.

    Row arguments are absolute document rows, the numbering used by find
    results and data-row attributes. Chunk starts stay relative to the body.
    """

    def __init__(
        self,
        send_fn,
        rendered_rows: int,
        total_rows: int,
        chunks=(),
        next_start: int | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        body_start: int = 0,
        header: bool = False,
    ):
        self.send_fn = send_fn
        self.body_start = body_start
        # the header row sits in the initial table, hidden rows never render
        self.first_row = body_start - 1 if header else body_start
        self.rendered_until = rendered_rows
        self.total_rows = total_rows
        self.local = deque(chunks)
        self.remote_cursor = next_start
        self.sequence = SequenceNumber()
        self.pending: tuple[int, int] | None = None
        self.max_attempts = max_attempts
        self.consumed: list[int] = []
        self.html_parts: list[str] = []
        self._target: tuple[int, int] | None = None
        self._attempts_left = 0

    @classmethod
    def from_plan(cls, plan, send_fn, chunk_size: int, max_attempts: int = MAX_ATTEMPTS):
        if plan.chunked:
            rendered = min(chunk_size, plan.total_rows)
        else:
            # initial table already holds every row plus the virtual one
            rendered = plan.total_rows + 1
        return cls(
            send_fn,
            rendered_rows=rendered,
            total_rows=plan.total_rows,
            chunks=plan.chunks,
            next_start=plan.next_chunk_start,
            max_attempts=max_attempts,
            body_start=plan.body_start,
            header=plan.header,
        )

    @property
    def exhausted(self) -> bool:
        return not self.local and self.remote_cursor is None and self.pending is None

    def is_rendered(self, row: int) -> bool:
        return self.first_row <= row < self.body_start + self.rendered_until

    # ---------- consumption ----------
    def _append(self, start: int, html: str, end: int):
        self.consumed.append(start)
        self.html_parts.append(html)
        self.rendered_until = max(self.rendered_until, end)

    def load_next_local(self) -> bool:
        if not self.local:
            return False
        chunk = self.local.popleft()
        self._append(chunk.start, chunk.html, chunk.end)
        return True

    def request_remote(self) -> bool:
        if self.pending is not None or self.remote_cursor is None:
            return False
        request_id = self.sequence.next()
        self.pending = (request_id, self.remote_cursor)
        self.send_fn(RequestChunk(start=self.remote_cursor, request_id=request_id))
        return True

    def handle_chunk_data(self, msg: ChunkData) -> bool:
        if self.pending is None or (msg.request_id, msg.start) != self.pending:
            logger.debug("Dropping unexpected chunk start=%s id=%s", msg.start, msg.request_id)
            return False
        self.pending = None
        if msg.done:
            end = self.total_rows + 1
            self.remote_cursor = None
        else:
            end = msg.next_start
            self.remote_cursor = msg.next_start
        self._append(msg.start, msg.html, end)
        if self._target is not None:
            self._drive()
        return True

    # ---------- targeting ----------
    def ensure_rendered(self, row: int, col: int = 0) -> bool:
        """Pull chunks in order until row is rendered.

        Returns True when the row is already present. When a remote request
        is needed the search resumes as responses arrive; the guard counter
        spans the whole search and running out of it drops the target.
        """
        self._target = (row, col)
        self._attempts_left = self.max_attempts
        return self._drive()

    def _drive(self) -> bool:
        row, _col = self._target
        while not self.is_rendered(row):
            if self._attempts_left <= 0:
                logger.debug("Giving up on row %d after %d pulls", row, self.max_attempts)
                self._target = None
                return False
            if self.local:
                self._attempts_left -= 1
                self.load_next_local()
                continue
            if self.pending is not None:
                return False
            if self.remote_cursor is None:
                self._target = None
                return False
            self._attempts_left -= 1
            self.request_remote()
            # a synchronous transport may already have answered
            return self.is_rendered(row)
        self._target = None
        return True
