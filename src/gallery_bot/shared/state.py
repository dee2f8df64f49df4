"""
Session State - Shared

Per-user conversation state and the application context object the chat
handlers receive through ``application.bot_data``. Memory-resident only:
everything here is lost on restart.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

APP_CONTEXT_KEY = 'app'


class SessionState(str, Enum):
    IDLE = 'idle'
    WAITING_SINGLE_URL = 'waiting_single_url'
    WAITING_MULTI_URL = 'waiting_multi_url'
    PROCESSING = 'processing'


@dataclass
class UserSession:
    """What one chat user is doing right now."""
    user_id: int
    state: SessionState = SessionState.IDLE
    job_id: Optional[str] = None

    @property
    def is_waiting(self) -> bool:
        return self.state in (SessionState.WAITING_SINGLE_URL, SessionState.WAITING_MULTI_URL)

    @property
    def is_processing(self) -> bool:
        return self.state is SessionState.PROCESSING


class SessionRegistry:
    """In-memory map of user id -> UserSession."""

    def __init__(self):
        self._sessions: Dict[int, UserSession] = {}

    def get(self, user_id: int) -> UserSession:
        """Get or create the session for a user."""
        session = self._sessions.get(user_id)
        if session is None:
            session = UserSession(user_id=user_id)
            self._sessions[user_id] = session
        return session

    def reset(self, user_id: int) -> UserSession:
        """Return a user to idle (does not cancel a running job)."""
        session = self.get(user_id)
        session.state = SessionState.IDLE
        session.job_id = None
        return session

    def active_count(self) -> int:
        """Number of users with a job in flight."""
        return sum(1 for s in self._sessions.values() if s.is_processing)

    def __len__(self) -> int:
        return len(self._sessions)


@dataclass
class AppContext:
    """
    Everything the handlers need, passed explicitly instead of module globals.

    Attributes:
        registry: Strategy registry (site support lookups)
        orchestrator: Pipeline orchestrator running jobs
        sessions: Per-user session registry
        cleanup_manager: Background sweep loop (started in post_init)
        web_runner: aiohttp AppRunner of the health server
        started_at: Unix time the context was created
    """
    registry: object
    orchestrator: object
    sessions: SessionRegistry = field(default_factory=SessionRegistry)
    cleanup_manager: Optional[object] = None
    web_runner: Optional[object] = None
    started_at: float = field(default_factory=time.time)


def get_app_context(context) -> AppContext:
    """Fetch the AppContext stored on a telegram CallbackContext."""
    return context.application.bot_data[APP_CONTEXT_KEY]
