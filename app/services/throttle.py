"""Lockout and rate-limit bookkeeping stored in the shared database."""
from datetime import timedelta
from typing import Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import RateLimited
from app.core.logging import log_security_event
from app.database import as_utc, utcnow
from app.models.throttle import ThrottleEvent


def longest_window_seconds() -> int:
    return max(
        settings.LOGIN_LOCKOUT_WINDOW_SECONDS,
        settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
        settings.GLOBAL_RATE_LIMIT_WINDOW_SECONDS,
    )


class Throttle:
    """Sliding-window event counter keyed by an arbitrary string."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count(self, key: str, window_seconds: int) -> int:
        cutoff = utcnow() - timedelta(seconds=window_seconds)
        result = await self.db.execute(
            select(func.count())
            .select_from(ThrottleEvent)
            .where(ThrottleEvent.key == key, ThrottleEvent.created_at > cutoff)
        )
        return result.scalar() or 0

    async def record(self, key: str) -> None:
        await self.prune_expired()
        self.db.add(ThrottleEvent(key=key, created_at=utcnow()))
        await self.db.commit()

    async def prune_expired(self) -> None:
        """Drop events of every key that no configured window can still count."""
        cutoff = utcnow() - timedelta(seconds=longest_window_seconds())
        await self.db.execute(delete(ThrottleEvent).where(ThrottleEvent.created_at <= cutoff))

    async def clear(self, key: str) -> None:
        await self.db.execute(delete(ThrottleEvent).where(ThrottleEvent.key == key))
        await self.db.commit()

    async def prune(self, key: str, window_seconds: int) -> None:
        """Drop events for ``key`` that fell out of the window."""
        cutoff = utcnow() - timedelta(seconds=window_seconds)
        await self.db.execute(
            delete(ThrottleEvent).where(
                ThrottleEvent.key == key, ThrottleEvent.created_at <= cutoff
            )
        )

    async def seconds_until_reset(self, key: str, window_seconds: int) -> int:
        """Seconds until the oldest event in the window expires."""
        cutoff = utcnow() - timedelta(seconds=window_seconds)
        result = await self.db.execute(
            select(func.min(ThrottleEvent.created_at)).where(
                ThrottleEvent.key == key, ThrottleEvent.created_at > cutoff
            )
        )
        oldest = result.scalar()
        if oldest is None:
            return 0
        reset_at = as_utc(oldest) + timedelta(seconds=window_seconds)
        return max(1, int((reset_at - utcnow()).total_seconds()) + 1)

    async def is_rate_limited(
        self, key: str, max_requests: int, window_seconds: int
    ) -> Tuple[bool, int | None]:
        """
        Count a request against ``key`` unless its budget is spent.

        Args:
            key: Budget key (e.g. "ip:auth:203.0.113.7")
            max_requests: Maximum requests allowed in window
            window_seconds: Time window in seconds

        Returns:
            Tuple of (is_limited, seconds_until_reset)
        """
        await self.prune(key, window_seconds)

        if await self.count(key, window_seconds) >= max_requests:
            await self.db.commit()
            return True, await self.seconds_until_reset(key, window_seconds)

        await self.record(key)
        return False, None


class RequestRateLimiter:
    """Per-IP request budgets."""

    def __init__(self, db: AsyncSession):
        self.throttle = Throttle(db)

    async def check(
        self, scope: str, client_ip: str, max_requests: int, window_seconds: int
    ) -> None:
        """Raise RateLimited when ``client_ip`` exhausted its budget for ``scope``."""
        is_limited, reset_time = await self.throttle.is_rate_limited(
            f"ip:{scope}:{client_ip}", max_requests, window_seconds
        )
        if is_limited:
            log_security_event("rate_limited", scope=scope, ip=client_ip)
            raise RateLimited(retry_after=reset_time)


class LoginLockout:
    """Consecutive failed logins per identity."""

    def __init__(self, db: AsyncSession):
        self.throttle = Throttle(db)
        self.max_attempts = settings.LOGIN_MAX_FAILED_ATTEMPTS
        self.window_seconds = settings.LOGIN_LOCKOUT_WINDOW_SECONDS

    @staticmethod
    def key_for(role: str, identifier: str) -> str:
        return f"login:{role}:{identifier.lower()}"

    async def ensure_not_locked(self, key: str) -> None:
        failures = await self.throttle.count(key, self.window_seconds)
        if failures >= self.max_attempts:
            retry_after = await self.throttle.seconds_until_reset(key, self.window_seconds)
            log_security_event("login_locked", key=key, retry_after=retry_after)
            raise RateLimited(
                "Too many failed attempts, please try again later",
                retry_after=retry_after,
            )

    async def record_failure(self, key: str) -> None:
        await self.throttle.prune(key, self.window_seconds)
        await self.throttle.record(key)

    async def reset(self, key: str) -> None:
        await self.throttle.clear(key)
