from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Optional

from lesson_tutor.context import SessionState

if TYPE_CHECKING:
    from supabase import Client

log = logging.getLogger(__name__)


class SessionStore:
    """Durable per-session state, keyed by session id.

    Every write replaces the whole SessionState. Methods are synchronous so a
    commit can never be interleaved with another coroutine's read-modify-write.
    """

    def load(self, session_id: str) -> SessionState:
        """Return the stored state, creating the initial one on first access."""
        raise NotImplementedError

    def save(self, state: SessionState) -> None:
        raise NotImplementedError

    def reset(self, session_id: str) -> SessionState:
        state = SessionState.initial(session_id)
        self.save(state)
        return state


class InMemorySessionStore(SessionStore):
    """Process-local store.

    WARNING: This will lose state on server restart and doesn't scale horizontally.
    """

    def __init__(self):
        self._sessions: Dict[str, SessionState] = {}

    def load(self, session_id: str) -> SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            state = SessionState.initial(session_id)
            self._sessions[session_id] = state
        return state

    def save(self, state: SessionState) -> None:
        self._sessions[state.session_id] = state


class SupabaseSessionStore(SessionStore):
    """Stores each session as one JSONB row in `chat_sessions`."""

    TABLE = "chat_sessions"

    def __init__(self, supabase: "Client"):
        self.supabase = supabase

    def load(self, session_id: str) -> SessionState:
        try:
            response = (
                self.supabase.table(self.TABLE)
                .select("state")
                .eq("id", session_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            log.error("Error fetching session %s from Supabase: %s", session_id, e)
            raise

        data: Optional[dict] = response.data if response is not None else None
        if data and data.get("state"):
            return SessionState.model_validate(data["state"])

        state = SessionState.initial(session_id)
        self.save(state)
        log.info("Created session %s in Supabase.", session_id)
        return state

    def save(self, state: SessionState) -> None:
        try:
            self.supabase.table(self.TABLE).upsert(
                {"id": state.session_id, "state": state.to_json()}
            ).execute()
        except Exception as e:
            log.error("Error saving session %s to Supabase: %s", state.session_id, e)
            raise
