import json
import logging
import sys
import threading

import config_paths
from _version import __version__
from document_state import DocumentStateStore
from file_type_handler import FileTypeHandler
from messages import Error
from session_manager import SessionManager

logger = logging.getLogger(__name__)

USAGE = (
    "gridtext - delimited text as an editable grid\n\n"
    "Usage:\n"
    "  gridtext [--log-level LEVEL] path\n"
    "  gridtext -v\n"
    "  gridtext -h\n\n"
    "Reads one JSON client message per line on stdin and writes one JSON\n"
    "engine message per line on stdout.\n"
)


class JsonLineWriter:
    """Serializes engine messages onto a stream, one JSON object per line."""

    def __init__(self, stream):
        self.stream = stream
        self._lock = threading.Lock()

    def __call__(self, message) -> None:
        line = json.dumps(message.to_payload(), ensure_ascii=False)
        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()


class ThreadTracker:
    """run_async hook that remembers its threads so the loop can wait on them."""

    def __init__(self):
        self.threads: list[threading.Thread] = []

    def __call__(self, fn):
        thread = threading.Thread(target=fn, daemon=True)
        self.threads.append(thread)
        thread.start()
        return thread

    def join(self):
        for thread in self.threads:
            thread.join()
        self.threads = []


def parse_args(args: list[str]):
    """Returns (path, log_level, action) where action is "version", "help", "usage" or None."""
    if "-v" in args or "-V" in args:
        return None, None, "version"
    if "-h" in args or "--help" in args:
        return None, None, "help"
    level = None
    rest = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--log-level" and i + 1 < len(args):
            level = args[i + 1]
            i += 2
            continue
        if arg.startswith("--log-level="):
            level = arg.split("=", 1)[1]
        else:
            rest.append(arg)
        i += 1
    if len(rest) != 1:
        return None, level, "usage"
    return rest[0], level, None


def serve(session, lines, send_fn) -> None:
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring malformed line: %s", exc)
            send_fn(Error(f"Malformed JSON: {exc.msg}"))
            continue
        session.handle(payload)


def main(argv=None, stdin=None, stdout=None):
    args = sys.argv[1:] if argv is None else list(argv)
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    path, level, action = parse_args(args)
    if action == "version":
        print(__version__, file=stdout)
        return 0
    if action == "help":
        print(USAGE, file=stdout)
        return 0
    if action == "usage":
        print(USAGE, file=sys.stderr)
        return 2

    config_paths.ensure_config_dirs()
    cfg = config_paths.load_config()
    logging.basicConfig(
        stream=sys.stderr,
        level=config_paths.log_level(cfg, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handler = FileTypeHandler(path)
    try:
        document = handler.load_or_create()
    except OSError as exc:
        print(f"Load failed: {exc}", file=sys.stderr)
        return 1

    store = DocumentStateStore(config_paths.STATE_JSON)
    store.load()
    manager = SessionManager(
        store=store,
        settings=config_paths.separator_settings_from_config(cfg),
        chunk_size=cfg["CHUNK_SIZE"],
        max_local_chunks=cfg["MAX_LOCAL_CHUNKS"],
    )
    send = JsonLineWriter(stdout)
    tracker = ThreadTracker()
    session = manager.open(document, send, file_handler=handler, run_async=tracker)
    serve(session, stdin, send)
    tracker.join()
    manager.close(session)
    return 0


if __name__ == "__main__":
    sys.exit(main())
