import logging
import re

from field_span_codec import CellUpdate, parse_rows
from grid_view import clamp_offset, trim_trailing_empty_rows
from messages import FindMatches, FindMatchesResult, FindOptions, Match
from sequencing import SequenceNumber

logger = logging.getLogger(__name__)

INVALID_REGEX_STATUS = "Invalid regex."


def build_pattern(query: str, options: FindOptions | None = None) -> re.Pattern | None:
    """Compile a find query. Returns None when a regex query does not compile."""
    options = options or FindOptions()
    source = query if options.regex else re.escape(query)
    if options.whole_word:
        source = r"\b(?:" + source + r")\b"
    flags = 0 if options.match_case else re.IGNORECASE
    try:
        return re.compile(source, flags)
    except re.error:
        return None


def find_matches(rows, pattern: re.Pattern, hidden_rows: int = 0) -> list[Match]:
    """Every visible cell the pattern hits, in row-major order with absolute rows."""
    rows = trim_trailing_empty_rows(rows)
    matches = []
    for r in range(clamp_offset(hidden_rows, len(rows)), len(rows)):
        for c, value in enumerate(rows[r]):
            if value and pattern.search(value):
                matches.append(Match(r, c, value))
    return matches


def execute_find(
    request_id: int,
    query: str,
    options: FindOptions | None,
    text: str,
    separator: str,
    hidden_rows: int = 0,
) -> FindMatchesResult:
    if not query:
        return FindMatchesResult(request_id)
    pattern = build_pattern(query, options)
    if pattern is None:
        return FindMatchesResult(request_id, invalid_regex=True)
    matches = find_matches(parse_rows(text, separator), pattern, hidden_rows)
    return FindMatchesResult(request_id, tuple(matches))


# ----- replace -----


def apply_preserved_case(matched: str, replacement: str) -> str:
    if not replacement or not any(ch.isalpha() for ch in matched):
        return replacement
    if matched.isupper():
        return replacement.upper()
    if matched.islower():
        return replacement.lower()
    head, tail = matched[:1], matched[1:]
    if head.isupper() and tail == tail.lower():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def replace_in_value(
    value: str,
    pattern: re.Pattern,
    replacement: str,
    preserve_case: bool = False,
    replace_all: bool = True,
    regex: bool = False,
) -> str:
    def substitute(match: re.Match) -> str:
        text = replacement
        if regex:
            try:
                text = match.expand(replacement)
            except (re.error, IndexError):
                logger.debug("Replacement %r has bad group references; using it literally", replacement)
        if preserve_case:
            text = apply_preserved_case(match.group(0), text)
        return text

    return pattern.sub(substitute, value, count=0 if replace_all else 1)


def pick_target(matches: list[Match], row: int | None, col: int | None) -> Match | None:
    """The first match at or after (row, col), wrapping to the first match."""
    if not matches:
        return None
    if row is None:
        return matches[0]
    anchor = (row, col or 0)
    for match in matches:
        if (match.row, match.col) >= anchor:
            return match
    return matches[0]


def replacement_updates(
    text: str,
    separator: str,
    query: str,
    replacement: str,
    options: FindOptions | None = None,
    preserve_case: bool = False,
    replace_all: bool = False,
    hidden_rows: int = 0,
    row: int | None = None,
    col: int | None = None,
) -> tuple[list[CellUpdate], bool]:
    """Cell updates for replace-one or replace-all. Returns (updates, invalid_regex)."""
    options = options or FindOptions()
    if not query:
        return [], False
    pattern = build_pattern(query, options)
    if pattern is None:
        return [], True
    matches = find_matches(parse_rows(text, separator), pattern, hidden_rows)
    if not replace_all:
        target = pick_target(matches, row, col)
        matches = [target] if target is not None else []
    updates = []
    for match in matches:
        new_value = replace_in_value(
            match.value, pattern, replacement, preserve_case, replace_all, options.regex
        )
        if new_value != match.value:
            updates.append(CellUpdate(match.row, match.col, new_value))
    return updates, False


class QuerySequencer:
    """Client side of find: stamps each query and keeps only the newest answer.

    There is no way to cancel a query once sent; a response whose id is not
    the latest issued id is simply dropped when it arrives.
    """

    def __init__(self, send_fn, on_result=None):
        self.send_fn = send_fn
        self.on_result = on_result
        self.sequence = SequenceNumber()
        self.current: FindMatchesResult | None = None

    @property
    def status(self) -> str:
        if self.current is None:
            return ""
        if self.current.invalid_regex:
            return INVALID_REGEX_STATUS
        return f"{len(self.current.matches)} match(es)"

    def find(self, query: str, options: FindOptions | None = None) -> int:
        request_id = self.sequence.next()
        self.send_fn(FindMatches(request_id, query, options or FindOptions()))
        return request_id

    def accept(self, result: FindMatchesResult) -> bool:
        if not self.sequence.is_latest(result.request_id):
            logger.debug(
                "Discarding stale find result %s (latest %s)", result.request_id, self.sequence.latest
            )
            return False
        self.current = result
        if self.on_result is not None:
            self.on_result(result)
        return True
