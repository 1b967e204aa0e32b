"""Shared test helpers (imported by conftest and test modules)."""

from datetime import datetime, timedelta, timezone
from typing import Any

from connectsphere.auth.jwt import create_access_token


class RecordingConnection:
    """Stand-in for a WebSocket: keeps every frame it was sent."""

    def __init__(self, user_id=None):
        self.user_id = user_id
        self.frames: list[dict] = []

    async def send_json(self, data: Any) -> None:
        self.frames.append(data)

    @property
    def events(self) -> list[str]:
        return [f["event"] for f in self.frames]

    def data(self, event: str) -> list[dict]:
        return [f["data"] for f in self.frames if f["event"] == event]


class BrokenConnection:
    """A socket whose peer went away."""

    async def send_json(self, data: Any) -> None:
        raise ConnectionResetError("peer closed")


def later(**kwargs) -> datetime:
    return datetime.now(timezone.utc) + timedelta(**kwargs)


def auth_headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}
