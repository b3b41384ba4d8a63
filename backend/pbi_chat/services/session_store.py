"""
In-memory chat session store
"""
import threading
import uuid
from collections import OrderedDict
from typing import List, Optional

from pbi_chat.core.config import settings
from pbi_chat.schemas.chat import Message


class SessionStore:
    """Per-session message history, kept in process memory only

    Both the history of a session and the number of sessions are bounded;
    when the store is full the least recently active session is evicted.
    """

    def __init__(self, history_limit: Optional[int] = None, session_limit: Optional[int] = None):
        self.history_limit = history_limit or settings.SESSION_HISTORY_LIMIT
        self.session_limit = session_limit or settings.SESSION_LIMIT
        self._sessions: "OrderedDict[str, List[Message]]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def new_session_id() -> str:
        return str(uuid.uuid4())

    def get_history(self, session_id: str) -> List[Message]:
        """Copy of the messages recorded for a session (empty if unknown)"""
        with self._lock:
            return list(self._sessions.get(session_id, []))

    def append(self, session_id: str, role: str, content: str) -> None:
        with self._lock:
            history = self._sessions.setdefault(session_id, [])
            self._sessions.move_to_end(session_id)
            history.append(Message(role=role, content=content))
            # Oldest messages are dropped first
            if len(history) > self.history_limit:
                del history[:-self.history_limit]
            while len(self._sessions) > self.session_limit:
                self._sessions.popitem(last=False)

    def clear(self, session_id: str) -> bool:
        """Forget a session; returns False if it did not exist"""
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
