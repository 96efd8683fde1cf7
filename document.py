import logging
import os
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class Document:
    """Owned text buffer; the single source of truth for a grid."""

    def __init__(self, text: str = "", path: str | None = None):
        self._text = text or ""
        self.path = path
        self.version = 0
        self.internal_rewrite = False
        self._lock = threading.RLock()
        self._untitled_id = id(self)

    @property
    def identity(self) -> str:
        if self.path:
            return os.path.abspath(self.path)
        return f"untitled:{self._untitled_id}"

    @property
    def text(self) -> str:
        return self._text

    def snapshot(self) -> tuple[str, int]:
        """Text and version as of the last committed mutation."""
        with self._lock:
            return self._text, self.version

    def replace(self, new_text: str) -> bool:
        """Swap the whole text in one step. Returns False when nothing changed."""
        new_text = new_text or ""
        with self._lock:
            if new_text == self._text:
                return False
            self._text = new_text
            self.version += 1
            return True

    @contextmanager
    def rewriting(self):
        with self._lock:
            previous = self.internal_rewrite
            self.internal_rewrite = True
            try:
                yield self
            finally:
                self.internal_rewrite = previous

    def notify_external_change(self, new_text: str) -> bool:
        with self._lock:
            if self.internal_rewrite:
                logger.debug("Ignoring external change during internal rewrite of %s", self.identity)
                return False
            return self.replace(new_text)
