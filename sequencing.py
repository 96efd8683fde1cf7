import threading


class SequenceNumber:
    """Monotonic request ids; only the most recently issued id is current."""

    def __init__(self, start: int = 0):
        self._latest = max(0, int(start))
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    @property
    def latest(self) -> int:
        return self._latest

    def is_latest(self, request_id) -> bool:
        if isinstance(request_id, bool) or not isinstance(request_id, int):
            return False
        return request_id == self._latest
