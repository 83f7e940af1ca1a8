"""
Chat Sessions

Persists chat turns to the store and reads them back: conversation
history for the next turn, and session listing/deletion for the
sessions endpoints. Every read and write is scoped to the session owner.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..common.schemas import Source
from ..common.session_context import utcnow
from ..common.store import Store, StoreError

logger = logging.getLogger("discovery.server.sessions")

TITLE_LENGTH = 100


class SessionOwnershipError(StoreError):
    """Raised when a user writes to a session owned by someone else"""


class ChatSessionStore:
    """chat_sessions / chat_messages access for one store"""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    async def _owner(self, session_id: str) -> Optional[str]:
        session = await self.store.get("chat_sessions", session_id)
        return session.get("user_id") if session else None

    async def resolve_session(self, session_id: Optional[str], user_id: str) -> str:
        """
        Session id to use for a turn.

        Returns ``session_id`` when it is new or owned by ``user_id``,
        otherwise a fresh id.
        """
        if session_id:
            owner = await self._owner(session_id)
            if owner is None or owner == user_id:
                return session_id
            logger.warning("User %s supplied session %s owned by another user; starting a new one",
                           user_id, session_id)
        return str(uuid.uuid4())

    async def load_history(self, session_id: str, user_id: str, window: int) -> List[Dict[str, str]]:
        """The last ``window`` turns (user + assistant pairs) of the user's session, oldest first"""
        if window <= 0 or await self._owner(session_id) != user_id:
            return []
        rows = await self.store.find_where(
            "chat_messages", {"session_id": session_id}, order_by="created_at", descending=False
        )
        return [{"role": r["role"], "content": r["content"]} for r in rows[-2 * window:]]

    async def save_turn(
        self,
        session_id: str,
        user_id: str,
        message: str,
        answer: str,
        sources: Sequence[Source] = (),
        mentions: Sequence[Dict[str, Any]] = (),
    ) -> None:
        """
        Append one user/assistant exchange, creating the session on first use.

        Raises:
            SessionOwnershipError: the session belongs to another user
        """
        now = self._clock().isoformat()

        session = await self.store.get("chat_sessions", session_id)
        if session is None:
            await self.store.insert("chat_sessions", {
                "id": session_id,
                "user_id": user_id,
                "title": message[:TITLE_LENGTH],
                "created_at": now,
                "updated_at": now,
            })
        elif session.get("user_id") != user_id:
            raise SessionOwnershipError(f"Session {session_id} is not owned by {user_id}")
        else:
            await self.store.update("chat_sessions", session_id, {"updated_at": now})

        await self.store.insert("chat_messages", {
            "session_id": session_id,
            "role": "user",
            "content": message,
            "mentions": list(mentions),
            "created_at": now,
        })
        await self.store.insert("chat_messages", {
            "session_id": session_id,
            "role": "assistant",
            "content": answer,
            "sources": [s.to_dict() for s in sources],
            "created_at": now,
        })

    async def list_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        return await self.store.find_where(
            "chat_sessions", {"user_id": user_id}, order_by="updated_at", descending=True
        )

    async def get_session(self, user_id: str, session_id: str) -> Optional[Dict[str, Any]]:
        sessions = await self.store.find_where("chat_sessions", {"id": session_id, "user_id": user_id})
        if not sessions:
            return None
        session = sessions[0]
        session["messages"] = await self.store.find_where(
            "chat_messages", {"session_id": session_id}, order_by="created_at", descending=False
        )
        return session

    async def delete_session(self, user_id: str, session_id: str) -> bool:
        removed = await self.store.delete("chat_sessions", {"id": session_id, "user_id": user_id})
        if removed:
            await self.store.delete("chat_messages", {"session_id": session_id})
            logger.info("Deleted chat session %s", session_id)
        return bool(removed)
