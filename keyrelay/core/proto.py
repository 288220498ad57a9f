from __future__ import annotations

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from keyrelay.utils.canonical import decode_frame


# ---------------------------------------------------------------------------
# Message types
# ---------------------------------------------------------------------------

SET_ADMIN_KEY = "SET_ADMIN_KEY"
REQUEST_ADMIN_KEY = "REQUEST_ADMIN_KEY"
PUBLIC_KEY = "PUBLIC_KEY"
MESSAGE = "MESSAGE"
STATUS = "STATUS"
ADMIN_KEY_RESPONSE = "ADMIN_KEY_RESPONSE"
ERROR = "ERROR"
NEW_USER = "NEW_USER"
USER_LEFT = "USER_LEFT"

# Types relayed verbatim between a user and the admin.
FORWARDED_TYPES = frozenset({PUBLIC_KEY, MESSAGE})

# WebSocket close codes used by the relay.
CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008


# ---------------------------------------------------------------------------
# Envelope model
# ---------------------------------------------------------------------------

class Envelope(BaseModel):
    """Inbound client envelope.

    Only ``type`` is structural; everything else is carried through untouched
    so forwarded frames reach the peer with every field the sender set.
    ``targetId`` is left unvalidated here: a non-integer target is a routing
    failure reported to the sender, not a malformed frame.
    """

    type: str
    target_id: Any = Field(default=None, alias="targetId")
    key: Any = None

    model_config = ConfigDict(extra="allow", strict=True)


class MalformedEnvelope(ValueError):
    """Raised when an inbound frame is not a JSON object with a string ``type``."""


def parse_envelope(raw: Union[str, bytes]) -> tuple[Envelope, Dict[str, Any]]:
    """Decode a wire frame into its model and the raw dict it came from."""

    try:
        data = decode_frame(raw)
    except ValueError as exc:
        raise MalformedEnvelope(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedEnvelope("envelope must be a JSON object")
    try:
        env = Envelope.model_validate(data)
    except ValidationError as exc:
        raise MalformedEnvelope(f"invalid envelope: {exc.error_count()} error(s)") from exc
    return env, data


# ---------------------------------------------------------------------------
# Server-originated frames
# ---------------------------------------------------------------------------

def status_frame(*, role: Optional[str] = None, message: Optional[str] = None) -> Dict[str, Any]:
    frame: Dict[str, Any] = {"type": STATUS}
    if role is not None:
        frame["role"] = role
    if message is not None:
        frame["message"] = message
    return frame


def error_frame(message: str) -> Dict[str, Any]:
    return {"type": ERROR, "message": message}


def admin_key_frame(key: Any) -> Dict[str, Any]:
    return {"type": ADMIN_KEY_RESPONSE, "key": key}


def new_user_frame(user_id: int) -> Dict[str, Any]:
    return {"type": NEW_USER, "userId": user_id, "message": f"New user (ID: {user_id}) connected."}


def user_left_frame(user_id: int) -> Dict[str, Any]:
    return {"type": USER_LEFT, "userId": user_id, "message": f"User (ID: {user_id}) disconnected."}


def forward_frame(data: Dict[str, Any], sender_id: int) -> Dict[str, Any]:
    """Copy of an inbound frame stamped with the sender's connection id."""

    frame = dict(data)
    frame["senderId"] = sender_id
    return frame


__all__ = [
    "SET_ADMIN_KEY",
    "REQUEST_ADMIN_KEY",
    "PUBLIC_KEY",
    "MESSAGE",
    "STATUS",
    "ADMIN_KEY_RESPONSE",
    "ERROR",
    "NEW_USER",
    "USER_LEFT",
    "FORWARDED_TYPES",
    "CLOSE_NORMAL",
    "CLOSE_POLICY_VIOLATION",
    "Envelope",
    "MalformedEnvelope",
    "parse_envelope",
    "status_frame",
    "error_frame",
    "admin_key_frame",
    "new_user_frame",
    "user_left_frame",
    "forward_frame",
]
