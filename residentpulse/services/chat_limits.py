"""Per-session chat admission control.

A fixed window per session id, kept in a ``limits`` storage backend. The
default ``memory://`` backend is process-local and expires stale windows on
its own timer; point CHAT_RATELIMIT_STORAGE_URI at redis when running more
than one instance.
"""
import math
import time

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from .errors import RateLimited


class SessionRateLimiter:
    namespace = "chat-session"

    def __init__(self, limit: str = "10 per minute", storage_uri: str = "memory://"):
        self.item = parse(limit)
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)

    @classmethod
    def from_config(cls, config) -> "SessionRateLimiter":
        return cls(
            config.get("CHAT_RATE_LIMIT", "10 per minute"),
            config.get("CHAT_RATELIMIT_STORAGE_URI", "memory://"),
        )

    def hit(self, session_id) -> None:
        """Count one request; raise RateLimited once the window is spent."""
        key = str(session_id)
        if self.strategy.hit(self.item, self.namespace, key):
            return
        stats = self.strategy.get_window_stats(self.item, self.namespace, key)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        raise RateLimited("Too many messages. Please wait a moment.", retry_after=retry_after)

    def reset(self) -> None:
        self.storage.reset()
