import time
from typing import Callable

from nexa.exceptions import SendBlockedError


class SendGuard:
    """Per-sender cooldown plus a temporary ban after too many sends."""

    def __init__(
        self,
        limit: int = 20,
        ban_seconds: float = 300,
        cooldown_seconds: float = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.ban_seconds = ban_seconds
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.count = 0
        self.banned_until = 0.0
        self.cooldown_until = 0.0

    def check(self) -> None:
        now = self.clock()
        if self.banned_until:
            if now < self.banned_until:
                raise SendBlockedError("spam protection: sending suspended", self.banned_until - now)
            self.banned_until = 0.0
            self.count = 0

        if now < self.cooldown_until:
            raise SendBlockedError("cooldown", self.cooldown_until - now)

        if self.count >= self.limit:
            self.banned_until = now + self.ban_seconds
            raise SendBlockedError("spam protection: sending suspended", self.ban_seconds)

    def record(self) -> None:
        self.count += 1
        self.cooldown_until = self.clock() + self.cooldown_seconds
