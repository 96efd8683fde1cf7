import json
import logging
import math
import os
from typing import Optional

from separator_resolver import is_valid_separator

logger = logging.getLogger(__name__)

HEADER_KEY = "header"
SERIAL_INDEX_KEY = "serialIndex"
SEPARATOR_KEY = "separator"
HIDDEN_ROWS_KEY = "hiddenRows"


def floor_hidden_rows(value) -> int:
    """Floor to a non-negative int; anything unusable counts as 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number <= 0:
        return 0
    return int(math.floor(number))


class DocumentStateStore:
    """Per-document view settings keyed by document identity.

    Backed by one JSON file. Reads and writes are best-effort: an unreadable
    file starts an empty store and a failed write keeps the in-memory state.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self.state: dict[str, dict] = {}

    def load(self) -> dict:
        self.state = {}
        if not self.path or not os.path.exists(self.path):
            return self.state
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable state file %s", self.path)
            return self.state
        if isinstance(data, dict):
            self.state = {k: dict(v) for k, v in data.items() if isinstance(k, str) and isinstance(v, dict)}
        return self.state

    def persist(self) -> None:
        if not self.path:
            return
        tmp_path = self.path + ".tmp"
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self.state, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError:
            logger.warning("Could not write state file %s", self.path)

    def _get(self, identity: str, key: str, default=None):
        return self.state.get(identity, {}).get(key, default)

    def _set(self, identity: str, key: str, value) -> None:
        entry = self.state.setdefault(identity, {})
        if value is None:
            entry.pop(key, None)
            if not entry:
                self.state.pop(identity, None)
        else:
            entry[key] = value
        self.persist()

    # ----- header -----
    def header_override(self, identity: str) -> Optional[bool]:
        value = self._get(identity, HEADER_KEY)
        return value if isinstance(value, bool) else None

    def set_header_override(self, identity: str, value: Optional[bool]) -> None:
        self._set(identity, HEADER_KEY, None if value is None else bool(value))

    # ----- serial index -----
    def serial_index(self, identity: str) -> bool:
        value = self._get(identity, SERIAL_INDEX_KEY)
        return value if isinstance(value, bool) else True

    def set_serial_index(self, identity: str, visible: bool) -> None:
        self._set(identity, SERIAL_INDEX_KEY, bool(visible))

    # ----- separator -----
    def separator_override(self, identity: str) -> Optional[str]:
        value = self._get(identity, SEPARATOR_KEY)
        return value if is_valid_separator(value) else None

    def set_separator_override(self, identity: str, sep: Optional[str]) -> None:
        self._set(identity, SEPARATOR_KEY, sep if is_valid_separator(sep) else None)

    # ----- hidden rows -----
    def hidden_rows(self, identity: str) -> int:
        return floor_hidden_rows(self._get(identity, HIDDEN_ROWS_KEY, 0))

    def set_hidden_rows(self, identity: str, value) -> int:
        count = floor_hidden_rows(value)
        self._set(identity, HIDDEN_ROWS_KEY, count or None)
        return count
