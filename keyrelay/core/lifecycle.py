from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from . import proto
from .ids import IdAllocator
from .keystore import AdminKeyStore, KeyPolicy
from .registry import Link, Role, Session, SessionRegistry

log = logging.getLogger("keyrelay.core.lifecycle")

ADMIN_OFFLINE_MESSAGE = "Admin went offline; session ended."


class LifecycleManager:
    """Admits new connections and tears sessions down when channels close.

    Connection states: connecting -> admin/user active -> closed. An admin
    closing cascades every active user to closed; a user closing affects no
    one else.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        keystore: AdminKeyStore,
        ids: IdAllocator,
        *,
        key_policy: KeyPolicy = KeyPolicy.RETAIN,
    ) -> None:
        self.registry = registry
        self.keystore = keystore
        self.ids = ids
        self.key_policy = key_policy

    async def on_connect(self, link: Link) -> Optional[Session]:
        conn_id = self.ids.next_id()
        session = self.registry.admit(conn_id, link)
        if session is None:
            await link.close(proto.CLOSE_POLICY_VIOLATION, "Admin already connected")
            return None

        log.info("New connection %d, role=%s", conn_id, session.role.value)
        await link.send(proto.status_frame(role=session.role.value))

        if session.role is Role.USER:
            with self.registry.transaction():
                # an admin teardown may have evicted this user during the send
                still_registered = self.registry.session(conn_id) is session
                admin = self.registry.admin_link() if still_registered else None
            if admin is not None:
                await admin.send(proto.new_user_frame(conn_id))
        return session

    async def on_disconnect(self, conn_id: int) -> None:
        with self.registry.transaction():
            if self.registry.remove_admin(conn_id) is not None:
                users = self.registry.clear_all_users()
                removed = None
            else:
                users = None
                removed = self.registry.remove_user(conn_id)

        if users is not None:
            await self._teardown_users(conn_id, users)
            return
        if removed is None:
            # already evicted by an admin teardown, or never admitted
            log.debug("Disconnect for unknown connection %d", conn_id)
            return
        log.info("User %d disconnected", conn_id)
        admin_link = self.registry.admin_link()
        if admin_link is not None:
            await admin_link.send(proto.user_left_frame(conn_id))

    async def _teardown_users(self, admin_id: int, users: List[Session]) -> None:
        log.info("Admin %d disconnected, ending %d user session(s)", admin_id, len(users))
        if self.key_policy is KeyPolicy.CLEAR_ON_ADMIN_EXIT:
            self.keystore.clear()
        await asyncio.gather(*(self._end_user_session(user) for user in users))

    async def _end_user_session(self, user: Session) -> None:
        await user.link.send(proto.status_frame(message=ADMIN_OFFLINE_MESSAGE))
        await user.link.close(proto.CLOSE_NORMAL, "Admin offline")


__all__ = ["LifecycleManager", "ADMIN_OFFLINE_MESSAGE"]
