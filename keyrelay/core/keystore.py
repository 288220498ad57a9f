from __future__ import annotations

import enum
import logging
import threading
from typing import Any, Optional

log = logging.getLogger("keyrelay.core.keystore")


class KeyPolicy(str, enum.Enum):
    """What happens to the cached admin key when the admin disconnects."""

    RETAIN = "retain"
    CLEAR_ON_ADMIN_EXIT = "clear_on_admin_exit"


class AdminKeyStore:
    """Single cached admin long-term public key. First write wins.

    The value is opaque to the relay (usually a JWK object) and is handed back
    to requesters exactly as it was stored.
    """

    def __init__(self) -> None:
        self._key: Optional[Any] = None
        self._lock = threading.Lock()

    def set_if_absent(self, key: Any) -> bool:
        if key is None:
            return False
        with self._lock:
            if self._key is not None:
                return False
            self._key = key
        log.info("Admin long-term public key stored")
        return True

    def get(self) -> Optional[Any]:
        with self._lock:
            return self._key

    def clear(self) -> None:
        with self._lock:
            had_key = self._key is not None
            self._key = None
        if had_key:
            log.info("Admin long-term public key cleared")

    @property
    def is_set(self) -> bool:
        return self.get() is not None


__all__ = ["AdminKeyStore", "KeyPolicy"]
