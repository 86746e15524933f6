"""
Shared test helpers.
"""

from backend.app.core.jwt import token_for_user
from backend.app.models.user import User


class FakeConnection:
    """Stands in for a websocket: records what the hub sends."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail
        self.fail_next = False
        self.close_code = None

    async def send_json(self, data):
        if self.close_code is not None:
            raise RuntimeError("send after close")
        if self.fail or self.fail_next:
            self.fail_next = False
            raise ConnectionError("socket closed")
        self.sent.append(data)

    async def close(self, code=1000):
        self.close_code = code

    @property
    def closed(self):
        return self.close_code is not None

    def events(self):
        return [message["event"] for message in self.sent]

    def last(self, event):
        for message in reversed(self.sent):
            if message["event"] == event:
                return message["data"]
        return None


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for_user(user)}"}
