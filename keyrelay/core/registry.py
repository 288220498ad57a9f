from __future__ import annotations

import enum
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Protocol

log = logging.getLogger("keyrelay.core.registry")


class Role(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class Link(Protocol):
    """Transport-owned channel handle. The registry only sends through it,
    closes it, and compares it by identity."""

    async def send(self, frame: Dict[str, Any]) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


@dataclass(frozen=True, slots=True)
class Session:
    conn_id: int
    role: Role
    link: Link

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class SessionRegistry:
    """Admin slot plus the user map, kept in step with the live connections.

    Every mutation runs under one lock so the admin check-and-set in
    :meth:`admit` cannot interleave with another connection's admission.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._admin: Optional[Session] = None
        self._users: Dict[int, Session] = {}

    # ------------------------------------------------------------------
    # Role arbitration
    # ------------------------------------------------------------------

    def assign_role(self) -> Role:
        with self._lock:
            return Role.USER if self._admin is not None else Role.ADMIN

    def admit(self, conn_id: int, link: Link) -> Optional[Session]:
        """Decide the role for a new connection and record it atomically."""
        with self._lock:
            if self.assign_role() is Role.ADMIN:
                if not self.register_admin(conn_id, link):
                    return None
                return self._admin
            return self.register_user(conn_id, link)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register_admin(self, conn_id: int, link: Link) -> bool:
        with self._lock:
            if self._admin is not None:
                log.warning("Refusing admin %d: admin %d already connected", conn_id, self._admin.conn_id)
                return False
            self._admin = Session(conn_id, Role.ADMIN, link)
            return True

    def register_user(self, conn_id: int, link: Link) -> Session:
        session = Session(conn_id, Role.USER, link)
        with self._lock:
            self._users[conn_id] = session
        return session

    def remove_user(self, conn_id: int) -> Optional[Session]:
        with self._lock:
            return self._users.pop(conn_id, None)

    def remove_admin(self, conn_id: int) -> Optional[Session]:
        with self._lock:
            if self._admin is None or self._admin.conn_id != conn_id:
                return None
            admin, self._admin = self._admin, None
            return admin

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the registry lock across several operations."""
        with self._lock:
            yield

    def clear_all_users(self) -> List[Session]:
        with self._lock:
            removed = list(self._users.values())
            self._users.clear()
        return removed

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def lookup_user(self, conn_id: int) -> Optional[Link]:
        with self._lock:
            session = self._users.get(conn_id)
        return session.link if session else None

    def admin_link(self) -> Optional[Link]:
        with self._lock:
            return self._admin.link if self._admin else None

    @property
    def admin_id(self) -> Optional[int]:
        with self._lock:
            return self._admin.conn_id if self._admin else None

    def session(self, conn_id: int) -> Optional[Session]:
        with self._lock:
            if self._admin is not None and self._admin.conn_id == conn_id:
                return self._admin
            return self._users.get(conn_id)

    def user_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._users)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users) + (1 if self._admin else 0)


__all__ = ["Role", "Link", "Session", "SessionRegistry"]
