import numpy as np
import pandas as pd

TYPE_EMPTY = "empty"
TYPE_BOOLEAN = "boolean"
TYPE_DATE = "date"
TYPE_INTEGER = "integer"
TYPE_FLOAT = "float"
TYPE_STRING = "string"

BOOLEAN_TOKENS = frozenset(
    {"true", "false", "t", "f", "yes", "no", "y", "n", "on", "off", "1", "0"}
)

_ISO_DATE = (
    r"^\d{4}-\d{2}-\d{2}(?:[ T]\d{2}:\d{2}(?::\d{2})?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)
_ISO_SLASH = r"^\d{4}/\d{2}/\d{2}$"
_NUMBER = r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
_LEADING_NUMBER = r"^\s*(" + _NUMBER + ")"


def _text_series(values) -> pd.Series:
    cells = pd.Series(list(values), dtype="object")
    return cells.where(cells.map(lambda v: isinstance(v, str)), "").astype(str).str.strip()


def parse_dates(values) -> pd.Series:
    """Strict ISO dates only: YYYY-MM-DD (+time/zone) or YYYY/MM/DD.

    Returns UTC timestamps positionally aligned with values, NaT where a value
    is not such a date. The whole column goes through one to_datetime call.
    """
    text = _text_series(values)
    if text.empty:
        return pd.Series([], dtype="datetime64[ns, UTC]")
    iso = text.str.match(_ISO_DATE)
    slash = text.str.match(_ISO_SLASH)
    candidates = text.where(iso | slash).str.replace("/", "-", regex=False)
    return pd.to_datetime(candidates, errors="coerce", utc=True, format="ISO8601")


def leading_numbers(values) -> pd.Series:
    """Numeric prefix of each string, the way a lenient float parser reads it."""
    text = _text_series(values)
    if text.empty:
        return pd.Series([], dtype=float)
    return pd.to_numeric(text.str.extract(_LEADING_NUMBER, expand=False), errors="coerce").astype(float)


def _tokens(values) -> pd.Series:
    cells = pd.Series(list(values), dtype="object").fillna("").astype(str)
    if cells.empty:
        return cells
    tokens = cells.str.split(",").explode().str.strip()
    return tokens[tokens != ""]


def estimate_column_type(values) -> str:
    tokens = _tokens(values)
    if tokens.empty:
        return TYPE_EMPTY
    if tokens.str.lower().isin(BOOLEAN_TOKENS).all():
        return TYPE_BOOLEAN
    if parse_dates(tokens).notna().all():
        return TYPE_DATE
    numeric = tokens.where(tokens.str.fullmatch(_NUMBER))
    numbers = pd.to_numeric(numeric, errors="coerce").astype(float)
    if numbers.notna().all():
        finite = np.isfinite(numbers)
        if finite.all() and (numbers == np.floor(numbers)).all():
            return TYPE_INTEGER
        return TYPE_FLOAT
    return TYPE_STRING


def column_frame(rows, num_columns: int | None = None) -> pd.DataFrame:
    """Jagged rows as a string frame; missing cells become empty strings."""
    frame = pd.DataFrame([list(r) for r in rows])
    if num_columns is not None:
        frame = frame.reindex(columns=range(num_columns))
    return frame.astype(object).where(frame.notna(), "")


def column_types(rows, num_columns: int | None = None) -> list[str]:
    if num_columns is None:
        num_columns = max((len(r) for r in rows), default=0)
    if not rows:
        return [TYPE_EMPTY] * num_columns
    frame = column_frame(rows, num_columns)
    return [estimate_column_type(frame[c]) for c in range(num_columns)]
