# rate_limiter.py
# Fixed-window action limits (10 per minute per identifier) on top of `limits`,
# the engine slowapi uses. Keys are action + subject ("avaliacao_<user>", ...),
# not request IPs, so the data layer can call it outside of HTTP.
#
# RATE_LIMIT_STORAGE_URI picks the counter store: "memory://" (default,
# per process, forgotten on restart) or e.g. "redis://host:6379" to share
# counters between instances.
import os

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

RATE_LIMIT = "10/minute"


class RateLimiter:
    """Allow at most `limit` actions per identifier (e.g. "10/minute")."""

    def __init__(self, limit: str = RATE_LIMIT, storage_uri: str = "memory://"):
        self.item = parse(limit)
        self.storage = storage_from_string(storage_uri)
        self._strategy = FixedWindowRateLimiter(self.storage)

    def check(self, identifier: str) -> bool:
        """Record one action for `identifier`. Returns False when it's over the limit."""
        # denied calls must not count, so test before hitting
        if not self._strategy.test(self.item, identifier):
            return False
        return self._strategy.hit(self.item, identifier)

    def remaining(self, identifier: str) -> int:
        return self._strategy.get_window_stats(self.item, identifier).remaining

    def reset(self):
        self.storage.reset()


# Single shared instance used by the data access layer
limiter = RateLimiter(storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"))


def check_rate_limit(identifier: str) -> bool:
    return limiter.check(identifier)
