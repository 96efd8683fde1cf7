"""Typed messages exchanged between a rendering client and the engine.

Client payloads are plain dicts tagged by ``type``. ``parse_client_message``
validates one into the matching frozen dataclass or raises ``MessageError``;
nothing unvalidated reaches the engine. Engine messages serialize back with
``to_payload()`` using the camelCase wire names.
"""

from dataclasses import dataclass, field
from typing import ClassVar

from field_span_codec import CellUpdate


class MessageError(ValueError):
    """A client payload that does not match any known message shape."""


_MISSING = object()


def _get(payload: dict, key: str, default):
    if key in payload:
        return payload[key]
    if default is _MISSING:
        raise MessageError(f"missing field '{key}'")
    return default


def _int(payload: dict, key: str, default=_MISSING, minimum: int | None = None) -> int:
    value = _get(payload, key, default)
    # bool is an int subclass; a flag is never a valid index
    if isinstance(value, bool) or not isinstance(value, int):
        raise MessageError(f"field '{key}' must be an integer")
    if minimum is not None and value < minimum:
        raise MessageError(f"field '{key}' must be >= {minimum}")
    return value


def _optional_int(payload: dict, key: str) -> int | None:
    if payload.get(key) is None:
        return None
    return _int(payload, key)


def _bool(payload: dict, key: str, default=_MISSING) -> bool:
    value = _get(payload, key, default)
    if not isinstance(value, bool):
        raise MessageError(f"field '{key}' must be a boolean")
    return value


def _str(payload: dict, key: str, default=_MISSING) -> str:
    value = _get(payload, key, default)
    if not isinstance(value, str):
        raise MessageError(f"field '{key}' must be a string")
    return value


def _int_list(payload: dict, key: str) -> tuple[int, ...]:
    value = _get(payload, key, _MISSING)
    if not isinstance(value, (list, tuple)):
        raise MessageError(f"field '{key}' must be a list of integers")
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int):
            raise MessageError(f"field '{key}' must be a list of integers")
    return tuple(value)


def _cell_update(item) -> CellUpdate:
    if not isinstance(item, dict):
        raise MessageError("replacement must be an object")
    return CellUpdate(_int(item, "row"), _int(item, "col"), _str(item, "value"))


# ----- shared value types -----


@dataclass(frozen=True)
class FindOptions:
    match_case: bool = False
    whole_word: bool = False
    regex: bool = False

    @classmethod
    def from_payload(cls, payload) -> "FindOptions":
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise MessageError("field 'options' must be an object")
        return cls(
            match_case=_bool(payload, "matchCase", False),
            whole_word=_bool(payload, "wholeWord", False),
            regex=_bool(payload, "regex", False),
        )


@dataclass(frozen=True)
class Match:
    row: int
    col: int
    value: str

    def to_payload(self) -> dict:
        return {"row": self.row, "col": self.col, "value": self.value}


# ----- client -> engine -----


@dataclass(frozen=True)
class EditCell:
    type: ClassVar[str] = "editCell"
    row: int
    col: int
    value: str

    @classmethod
    def from_payload(cls, p):
        return cls(_int(p, "row", minimum=0), _int(p, "col", minimum=0), _str(p, "value"))


@dataclass(frozen=True)
class ReplaceCells:
    type: ClassVar[str] = "replaceCells"
    replacements: tuple[CellUpdate, ...]

    @classmethod
    def from_payload(cls, p):
        items = _get(p, "replacements", _MISSING)
        if not isinstance(items, list):
            raise MessageError("field 'replacements' must be a list")
        return cls(tuple(_cell_update(item) for item in items))


@dataclass(frozen=True)
class FindMatches:
    type: ClassVar[str] = "findMatches"
    request_id: int
    query: str
    options: FindOptions = field(default_factory=FindOptions)

    @classmethod
    def from_payload(cls, p):
        return cls(_int(p, "requestId"), _str(p, "query"), FindOptions.from_payload(p.get("options")))


@dataclass(frozen=True)
class ReplaceMatches:
    type: ClassVar[str] = "replaceMatches"
    query: str
    replacement: str
    options: FindOptions = field(default_factory=FindOptions)
    preserve_case: bool = False
    replace_all: bool = False
    row: int | None = None
    col: int | None = None

    @classmethod
    def from_payload(cls, p):
        return cls(
            query=_str(p, "query"),
            replacement=_str(p, "replacement"),
            options=FindOptions.from_payload(p.get("options")),
            preserve_case=_bool(p, "preserveCase", False),
            replace_all=_bool(p, "all", False),
            row=_optional_int(p, "row"),
            col=_optional_int(p, "col"),
        )


@dataclass(frozen=True)
class InsertRows:
    type: ClassVar[str] = "insertRows"
    index: int
    count: int = 1

    @classmethod
    def from_payload(cls, p):
        return cls(_int(p, "index"), _int(p, "count", 1))


@dataclass(frozen=True)
class DeleteRows:
    type: ClassVar[str] = "deleteRows"
    indices: tuple[int, ...]

    @classmethod
    def from_payload(cls, p):
        return cls(_int_list(p, "indices"))


@dataclass(frozen=True)
class InsertColumns:
    type: ClassVar[str] = "insertColumns"
    index: int
    count: int = 1

    @classmethod
    def from_payload(cls, p):
        return cls(_int(p, "index"), _int(p, "count", 1))


@dataclass(frozen=True)
class DeleteColumns:
    type: ClassVar[str] = "deleteColumns"
    indices: tuple[int, ...]

    @classmethod
    def from_payload(cls, p):
        return cls(_int_list(p, "indices"))


@dataclass(frozen=True)
class ReorderRows:
    type: ClassVar[str] = "reorderRows"
    indices: tuple[int, ...]
    before_index: int

    @classmethod
    def from_payload(cls, p):
        return cls(_int_list(p, "indices"), _int(p, "beforeIndex"))


@dataclass(frozen=True)
class ReorderColumns:
    type: ClassVar[str] = "reorderColumns"
    indices: tuple[int, ...]
    before_index: int

    @classmethod
    def from_payload(cls, p):
        return cls(_int_list(p, "indices"), _int(p, "beforeIndex"))


@dataclass(frozen=True)
class SortColumn:
    type: ClassVar[str] = "sortColumn"
    index: int
    ascending: bool = True

    @classmethod
    def from_payload(cls, p):
        return cls(_int(p, "index", minimum=0), _bool(p, "ascending", True))


@dataclass(frozen=True)
class RequestChunk:
    type: ClassVar[str] = "requestChunk"
    start: int
    request_id: int

    @classmethod
    def from_payload(cls, p):
        return cls(_int(p, "start", minimum=0), _int(p, "requestId"))

    def to_payload(self) -> dict:
        return {"type": self.type, "start": self.start, "requestId": self.request_id}


@dataclass(frozen=True)
class PasteCells:
    type: ClassVar[str] = "pasteCells"
    text: str
    anchor_row: int
    anchor_col: int
    selection: tuple[int, int, int, int] | None = None

    @classmethod
    def from_payload(cls, p):
        return cls(
            _str(p, "text"),
            _int(p, "anchorRow", minimum=0),
            _int(p, "anchorCol", minimum=0),
            _selection(p.get("selection")),
        )


def _selection(value) -> tuple[int, int, int, int] | None:
    if value is None:
        return None
    if isinstance(value, dict):
        coords = tuple(_int(value, key, minimum=0) for key in ("startRow", "startCol", "endRow", "endCol"))
    elif isinstance(value, (list, tuple)) and len(value) == 4:
        coords = _int_list({"selection": list(value)}, "selection")
        if min(coords) < 0:
            raise MessageError("field 'selection' must be non-negative")
    else:
        raise MessageError("field 'selection' must be an object or a 4-item list")
    r0, c0, r1, c1 = coords
    return (min(r0, r1), min(c0, c1), max(r0, r1), max(c0, c1))


@dataclass(frozen=True)
class Save:
    type: ClassVar[str] = "save"

    @classmethod
    def from_payload(cls, p):
        return cls()


@dataclass(frozen=True)
class ToggleHeader:
    type: ClassVar[str] = "toggleHeader"

    @classmethod
    def from_payload(cls, p):
        return cls()


@dataclass(frozen=True)
class ToggleSerialIndex:
    type: ClassVar[str] = "toggleSerialIndex"

    @classmethod
    def from_payload(cls, p):
        return cls()


@dataclass(frozen=True)
class ChangeSeparator:
    type: ClassVar[str] = "changeSeparator"
    text: str

    @classmethod
    def from_payload(cls, p):
        return cls(_str(p, "text", ""))


@dataclass(frozen=True)
class SetHiddenRows:
    type: ClassVar[str] = "setHiddenRows"
    count: int

    @classmethod
    def from_payload(cls, p):
        return cls(_int(p, "count"))


CLIENT_MESSAGES = {
    cls.type: cls
    for cls in (
        EditCell,
        ReplaceCells,
        FindMatches,
        ReplaceMatches,
        InsertRows,
        DeleteRows,
        InsertColumns,
        DeleteColumns,
        ReorderRows,
        ReorderColumns,
        SortColumn,
        RequestChunk,
        PasteCells,
        Save,
        ToggleHeader,
        ToggleSerialIndex,
        ChangeSeparator,
        SetHiddenRows,
    )
}


def parse_client_message(payload):
    if not isinstance(payload, dict):
        raise MessageError("message must be an object")
    tag = payload.get("type")
    cls = CLIENT_MESSAGES.get(tag)
    if cls is None:
        raise MessageError(f"unknown message type: {tag!r}")
    return cls.from_payload(payload)


# ----- engine -> client -----


@dataclass(frozen=True)
class UpdateCell:
    type: ClassVar[str] = "updateCell"
    row: int
    col: int
    value: str
    rendered: str | None = None

    def to_payload(self) -> dict:
        payload = {"type": self.type, "row": self.row, "col": self.col, "value": self.value}
        if self.rendered is not None:
            payload["rendered"] = self.rendered
        return payload


@dataclass(frozen=True)
class FindMatchesResult:
    type: ClassVar[str] = "findMatchesResult"
    request_id: int
    matches: tuple[Match, ...] = ()
    invalid_regex: bool = False

    def to_payload(self) -> dict:
        return {
            "type": self.type,
            "requestId": self.request_id,
            "matches": [m.to_payload() for m in self.matches],
            "invalidRegex": self.invalid_regex,
        }


@dataclass(frozen=True)
class ChunkData:
    type: ClassVar[str] = "chunkData"
    request_id: int
    start: int
    html: str
    next_start: int | None
    done: bool

    def to_payload(self) -> dict:
        return {
            "type": self.type,
            "requestId": self.request_id,
            "start": self.start,
            "html": self.html,
            "nextStart": self.next_start,
            "done": self.done,
        }


@dataclass(frozen=True)
class PasteApplied:
    type: ClassVar[str] = "pasteApplied"
    start_row: int
    start_col: int
    end_row: int
    end_col: int

    def to_payload(self) -> dict:
        return {
            "type": self.type,
            "startRow": self.start_row,
            "startCol": self.start_col,
            "endRow": self.end_row,
            "endCol": self.end_col,
        }


@dataclass(frozen=True)
class Render:
    type: ClassVar[str] = "render"
    html: str
    separator: str
    header: bool
    serial_index: bool
    hidden_rows: int
    chunks: tuple[dict, ...] = ()
    next_chunk_start: int | None = None
    total_rows: int = 0

    @property
    def has_more_chunks(self) -> bool:
        return self.next_chunk_start is not None

    def to_payload(self) -> dict:
        return {
            "type": self.type,
            "html": self.html,
            "separator": self.separator,
            "header": self.header,
            "serialIndex": self.serial_index,
            "hiddenRows": self.hidden_rows,
            "chunks": list(self.chunks),
            "nextChunkStart": self.next_chunk_start,
            "hasMoreChunks": self.has_more_chunks,
            "totalRows": self.total_rows,
        }


@dataclass(frozen=True)
class Error:
    type: ClassVar[str] = "error"
    message: str

    def to_payload(self) -> dict:
        return {"type": self.type, "message": self.message}
