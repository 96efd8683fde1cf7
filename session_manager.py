import logging

from chunk_planner import CHUNK_SIZE, MAX_LOCAL_CHUNKS
from document_state import DocumentStateStore
from editor_session import EditorSession, run_in_thread
from separator_resolver import SeparatorResolver, SeparatorSettings

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns every open session, grouped by document identity.

    Anything that has to reach the other views of a document (a structural
    edit, a header toggle) goes through refresh or broadcast here.
    """

    def __init__(
        self,
        store: DocumentStateStore | None = None,
        settings: SeparatorSettings | None = None,
        chunk_size: int = CHUNK_SIZE,
        max_local_chunks: int = MAX_LOCAL_CHUNKS,
    ):
        self.store = store if store is not None else DocumentStateStore()
        self.settings = settings or SeparatorSettings()
        self.resolver = SeparatorResolver()
        self.chunk_size = chunk_size
        self.max_local_chunks = max_local_chunks
        self.sessions: dict[str, list[EditorSession]] = {}
        self.active: EditorSession | None = None

    def open(self, document, send_fn, file_handler=None, run_async=run_in_thread, render=True) -> EditorSession:
        session = EditorSession(
            document,
            send_fn,
            store=self.store,
            settings=self.settings,
            resolver=self.resolver,
            manager=self,
            file_handler=file_handler,
            chunk_size=self.chunk_size,
            max_local_chunks=self.max_local_chunks,
            run_async=run_async,
        )
        self.sessions.setdefault(session.identity, []).append(session)
        self.active = session
        logger.info("Opened %s", session.identity)
        if render:
            session.send_render()
        return session

    def close(self, session: EditorSession) -> None:
        group = self.sessions.get(session.identity, [])
        if session in group:
            group.remove(session)
        if not group:
            self.sessions.pop(session.identity, None)
        if self.active is session:
            self.active = next((s for g in self.sessions.values() for s in g), None)

    def sessions_for(self, identity: str) -> list[EditorSession]:
        return list(self.sessions.get(identity, []))

    def refresh(self, identity: str) -> None:
        for session in self.sessions_for(identity):
            session.send_render()

    def broadcast(self, identity: str, message) -> None:
        for session in self.sessions_for(identity):
            session.send_fn(message)
