from __future__ import annotations

import logging
from typing import Optional, Union

from . import proto
from .ids import IdAllocator
from .keystore import AdminKeyStore, KeyPolicy
from .lifecycle import LifecycleManager
from .registry import Link, Session, SessionRegistry
from .router import Router

log = logging.getLogger("keyrelay.core.relay")


class Relay:
    """All relay state for one process, driven by three transport events.

    The transport calls :meth:`on_connect` when a channel opens,
    :meth:`on_message` for every inbound frame and :meth:`on_disconnect` once
    the channel is gone.
    """

    def __init__(
        self,
        *,
        key_policy: KeyPolicy = KeyPolicy.RETAIN,
        strict_protocol: bool = False,
    ) -> None:
        self.ids = IdAllocator()
        self.registry = SessionRegistry()
        self.keystore = AdminKeyStore()
        self.router = Router(self.registry, self.keystore, strict_protocol=strict_protocol)
        self.lifecycle = LifecycleManager(self.registry, self.keystore, self.ids, key_policy=key_policy)

    async def on_connect(self, link: Link) -> Optional[Session]:
        return await self.lifecycle.on_connect(link)

    async def on_message(self, conn_id: int, raw: Union[str, bytes]) -> None:
        session = self.registry.session(conn_id)
        if session is None:
            log.debug("Dropping frame from connection %d with no live session", conn_id)
            return
        try:
            envelope, data = proto.parse_envelope(raw)
        except proto.MalformedEnvelope as exc:
            log.debug("Dropping malformed frame from %d: %s", conn_id, exc)
            return
        await self.router.dispatch(session, envelope, data)

    async def on_disconnect(self, conn_id: int) -> None:
        await self.lifecycle.on_disconnect(conn_id)


__all__ = ["Relay"]
