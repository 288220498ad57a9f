from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from . import proto
from .keystore import AdminKeyStore
from .registry import Link, Role, Session, SessionRegistry

log = logging.getLogger("keyrelay.core.router")


def _is_conn_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class Router:
    """Services key bootstrap frames locally and relays the rest between a
    user and the admin."""

    def __init__(
        self,
        registry: SessionRegistry,
        keystore: AdminKeyStore,
        *,
        strict_protocol: bool = False,
    ) -> None:
        self.registry = registry
        self.keystore = keystore
        self.strict_protocol = strict_protocol

    def find_peer(self, sender: Session, target_id: Any = None) -> Optional[Link]:
        """Resolve who receives a forwarded frame from ``sender``.

        Admin frames go to the user named by ``target_id``; user frames always
        go to the admin.
        """
        if sender.role is Role.ADMIN:
            if not _is_conn_id(target_id):
                return None
            return self.registry.lookup_user(target_id)
        return self.registry.admin_link()

    async def dispatch(self, sender: Session, envelope: proto.Envelope, data: Dict[str, Any]) -> None:
        type_ = envelope.type
        if type_ == proto.SET_ADMIN_KEY:
            await self._handle_set_admin_key(sender, envelope)
        elif type_ == proto.REQUEST_ADMIN_KEY:
            await self._handle_request_admin_key(sender)
        elif type_ in proto.FORWARDED_TYPES:
            await self._handle_forward(sender, envelope, data)
        else:
            log.debug("Dropping frame of unhandled type %r from %d", type_, sender.conn_id)

    # ------------------------------------------------------------------
    # Key bootstrap
    # ------------------------------------------------------------------

    async def _handle_set_admin_key(self, sender: Session, envelope: proto.Envelope) -> None:
        if sender.role is not Role.ADMIN:
            await self._misuse(sender, "only the admin may set the admin key")
            return
        if not self.keystore.set_if_absent(envelope.key):
            reason = "admin key missing" if envelope.key is None else "admin key already set"
            await self._misuse(sender, reason)
            return
        await sender.link.send(proto.status_frame(message="Admin long-term public key stored; available for verification."))

    async def _handle_request_admin_key(self, sender: Session) -> None:
        key = self.keystore.get()
        if key is None:
            await self._misuse(sender, "admin key not available")
            return
        await sender.link.send(proto.admin_key_frame(key))
        log.info("Sent admin long-term public key to %d", sender.conn_id)

    async def _misuse(self, sender: Session, reason: str) -> None:
        log.debug("Ignoring request from %d: %s", sender.conn_id, reason)
        if self.strict_protocol:
            await sender.link.send(proto.error_frame(reason))

    # ------------------------------------------------------------------
    # Forwarding
    # ------------------------------------------------------------------

    async def _handle_forward(self, sender: Session, envelope: proto.Envelope, data: Dict[str, Any]) -> None:
        target_id = envelope.target_id
        peer = self.find_peer(sender, target_id)
        if peer is None:
            if sender.role is Role.ADMIN:
                label = target_id if target_id is not None else "(missing targetId)"
            else:
                label = "admin"
            await sender.link.send(proto.error_frame(f"No session found for target ID: {label}"))
            log.info("Unroutable %s from %d (target %s)", envelope.type, sender.conn_id, label)
            return

        await peer.send(proto.forward_frame(data, sender.conn_id))
        dest = target_id if sender.role is Role.ADMIN else self.registry.admin_id
        log.info("Forwarded %s: %d -> %s", envelope.type, sender.conn_id, dest)


__all__ = ["Router"]
