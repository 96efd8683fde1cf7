import logging
import os
from collections import Counter
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

MODE_EXTENSION = "extension"
MODE_AUTO = "auto"
MODE_DEFAULT = "default"
MODES = (MODE_EXTENSION, MODE_AUTO, MODE_DEFAULT)

BUILTIN_SEPARATORS = {".csv": ",", ".tsv": "\t", ".tab": "\t", ".psv": "|"}
COMMON_SEPARATORS = (",", ";", "\t", "|")
FALLBACK_SEPARATOR = ","

SAMPLE_MAX_LINES = 200
SAMPLE_MAX_CHARS = 300_000

_FORBIDDEN = {'"', "\r", "\n"}


def normalize_extension(ext: str) -> str:
    ext = (ext or "").strip().lower()
    if not ext:
        return ""
    return ext if ext.startswith(".") else "." + ext


def is_valid_separator(sep) -> bool:
    return isinstance(sep, str) and len(sep) == 1 and sep not in _FORBIDDEN


def format_separator(sep: str | None) -> str:
    """Human-facing form of a separator; tab is shown as the two characters \\t."""
    if sep is None:
        return ""
    return sep.replace("\t", "\\t")


def parse_separator_input(text: str | None) -> str | None:
    """Inverse of format_separator. Empty input means 'inherit' (None)."""
    if text is None:
        return None
    text = text.replace("\\t", "\t")
    if text == "":
        return None
    sep = text[0]
    return sep if is_valid_separator(sep) else None


@dataclass
class SeparatorSettings:
    mode: str = MODE_EXTENSION
    default_separator: str = FALLBACK_SEPARATOR
    by_extension: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.mode not in MODES:
            self.mode = MODE_EXTENSION
        if not is_valid_separator(self.default_separator):
            self.default_separator = FALLBACK_SEPARATOR
        cleaned = {}
        for ext, sep in (self.by_extension or {}).items():
            key = normalize_extension(ext)
            if key and is_valid_separator(sep):
                cleaned[key] = sep
        self.by_extension = cleaned

    def extension_map(self) -> dict[str, str]:
        merged = dict(BUILTIN_SEPARATORS)
        merged.update(self.by_extension)
        return merged

    def fingerprint(self) -> tuple:
        return (
            self.mode,
            self.default_separator,
            tuple(sorted(self.by_extension.items())),
        )


def extension_separator(path: str | None, settings: SeparatorSettings) -> str:
    ext = normalize_extension(os.path.splitext(path or "")[1])
    return settings.extension_map().get(ext, settings.default_separator)


def sample_lines(text: str) -> list[str]:
    lines = []
    for line in (text or "")[:SAMPLE_MAX_CHARS].splitlines():
        if not line.strip():
            continue
        lines.append(line)
        if len(lines) >= SAMPLE_MAX_LINES:
            break
    return lines


def count_outside_quotes(line: str, sep: str) -> int:
    count = 0
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == sep and not in_quotes:
            count += 1
        i += 1
    return count


def candidate_separators(path: str | None, settings: SeparatorSettings) -> list[str]:
    ordered = [extension_separator(path, settings), settings.default_separator]
    ordered.extend(COMMON_SEPARATORS)
    ordered.extend(settings.extension_map().values())
    seen = []
    for sep in ordered:
        if is_valid_separator(sep) and sep not in seen:
            seen.append(sep)
    return seen


def score_separator(lines: list[str], sep: str) -> tuple[float, int] | None:
    """Return (score, qualifying line count), or None if sep does not qualify."""
    if not lines:
        return None
    counts = [count_outside_quotes(line, sep) for line in lines]
    qualifying = [c for c in counts if c > 0]
    if not qualifying or len(qualifying) < min(2, len(lines)):
        return None
    modal = Counter(qualifying).most_common(1)[0][1] / len(qualifying)
    mean = sum(qualifying) / len(qualifying)
    first_line = 25 if counts[0] > 0 else -25
    score = 10 * len(qualifying) + 100 * modal + mean + first_line
    return score, len(qualifying)


def detect_separator(path: str | None, text: str, settings: SeparatorSettings) -> str | None:
    lines = sample_lines(text)
    best = None
    best_key = None
    for sep in candidate_separators(path, settings):
        scored = score_separator(lines, sep)
        if scored is None:
            continue
        if best_key is None or scored > best_key:
            best = sep
            best_key = scored
    return best


def resolve_separator(
    path: str | None,
    text: str,
    settings: SeparatorSettings | None = None,
    override: str | None = None,
) -> str:
    if is_valid_separator(override):
        return override
    settings = settings or SeparatorSettings()
    if settings.mode == MODE_DEFAULT:
        return settings.default_separator
    if settings.mode == MODE_AUTO:
        detected = detect_separator(path, text, settings)
        if detected is not None:
            return detected
        logger.debug("No separator detected for %s; using extension default", path)
    return extension_separator(path, settings)


class SeparatorResolver:
    """Caches resolution per (document version, settings fingerprint)."""

    def __init__(self):
        self._cache: dict[tuple, str] = {}

    def resolve(self, document, settings: SeparatorSettings, override: str | None = None) -> str:
        if is_valid_separator(override):
            return override
        key = (document.identity, document.version, settings.fingerprint())
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        sep = resolve_separator(document.path, document.text, settings)
        self._cache = {key: sep}
        return sep
