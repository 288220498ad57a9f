import pytest

from keyrelay.core.relay import Relay


class FakeLink:
    """In-memory stand-in for a transport connection."""

    def __init__(self, name: str = "link"):
        self.name = name
        self.sent = []
        self.closed = None

    async def send(self, frame: dict) -> None:
        if self.closed is None:
            self.sent.append(frame)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = (code, reason)

    def of_type(self, type_: str) -> list:
        return [f for f in self.sent if f.get("type") == type_]

    def __repr__(self) -> str:
        return f"FakeLink({self.name!r})"


@pytest.fixture
def make_link():
    return FakeLink


@pytest.fixture
def relay():
    return Relay()
