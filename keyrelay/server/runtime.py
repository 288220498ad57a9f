from __future__ import annotations

import asyncio
import email.utils
import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.datastructures import Headers
from websockets.http11 import Request, Response

from keyrelay.core.config import RelayConfig
from keyrelay.core.relay import Relay
from keyrelay.utils.canonical import encode_frame

log = logging.getLogger("keyrelay.server.runtime")


@dataclass(slots=True)
class Connection:
    websocket: ServerConnection
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def send(self, frame: Dict[str, Any]) -> None:
        text = encode_frame(frame)
        try:
            async with self.send_lock:
                await self.websocket.send(text)
        except websockets.ConnectionClosed:
            log.debug("Send to closed connection %s dropped", _fmt_remote(self.websocket))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        await self.websocket.close(code, reason)


class ServerRuntime:
    """WebSocket front end for a :class:`Relay`.

    Upgrades requests on ``ws_path``, serves the chat page on ``/`` and
    answers 404 for anything else.
    """

    def __init__(self, config: RelayConfig, relay: Optional[Relay] = None) -> None:
        self.cfg = config
        self.relay = relay or Relay(
            key_policy=config.admin_key_policy,
            strict_protocol=config.strict_protocol,
        )
        self._ws_server: Optional[Server] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._ws_server = await serve(
            self._handle_connection,
            self.cfg.host,
            self.cfg.port,
            process_request=self._process_request,
            ping_interval=self.cfg.ping_interval,
            ping_timeout=self.cfg.ping_timeout,
        )
        log.info("Relay listening on http://%s:%d (websocket path %s)", self.cfg.host, self.port, self.cfg.ws_path)

    async def stop(self) -> None:
        if self._ws_server is not None:
            self._ws_server.close()
            await self._ws_server.wait_closed()
            self._ws_server = None
            log.info("Relay stopped")

    @property
    def port(self) -> int:
        if self._ws_server is None:
            return self.cfg.port
        sock = next(iter(self._ws_server.sockets))
        return sock.getsockname()[1]

    # ------------------------------------------------------------------
    # HTTP routing
    # ------------------------------------------------------------------

    def _process_request(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        path = urlsplit(request.path).path
        if path == self.cfg.ws_path:
            if request.headers.get("Upgrade", "").lower() != "websocket":
                return connection.respond(HTTPStatus.BAD_REQUEST, "WebSocket Upgrade Error\n")
            return None
        if path == "/":
            return self._index_response()
        return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")

    def _index_response(self) -> Response:
        index = Path(self.cfg.index_file)
        try:
            body = index.read_bytes()
        except FileNotFoundError:
            log.warning("Index page %s not found", index)
            return _plain_response(HTTPStatus.NOT_FOUND, b"Not Found\n")
        return _plain_response(HTTPStatus.OK, body, content_type="text/html; charset=utf-8")

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        conn = Connection(websocket=websocket)
        log.debug("Accepted connection from %s", _fmt_remote(websocket))
        session = await self.relay.on_connect(conn)
        if session is None:
            return
        try:
            async for raw in websocket:
                await self.relay.on_message(session.conn_id, raw)
        except websockets.ConnectionClosed:
            pass
        finally:
            code = websocket.close_code
            log.info("Connection %d closed (code %s)", session.conn_id, code)
            await self.relay.on_disconnect(session.conn_id)


def _plain_response(status: HTTPStatus, body: bytes, *, content_type: str = "text/plain; charset=utf-8") -> Response:
    headers = Headers(
        [
            ("Date", email.utils.formatdate(usegmt=True)),
            ("Connection", "close"),
            ("Content-Length", str(len(body))),
            ("Content-Type", content_type),
        ]
    )
    return Response(status.value, status.phrase, headers, body)


def _fmt_remote(websocket: ServerConnection) -> str:
    peer = websocket.remote_address
    if isinstance(peer, tuple):
        return f"{peer[0]}:{peer[1]}"
    return str(peer)


__all__ = ["Connection", "ServerRuntime"]
