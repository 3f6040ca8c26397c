"""Rate limiting implementation using in-memory storage with sliding window."""

import logging
import time
from dataclasses import dataclass, field

from fastapi import HTTPException, Request, status

from babyregistry.core.audit import audit_rate_limit_exceeded
from babyregistry.core.config import settings


logger = logging.getLogger("babyregistry.rate_limit")

MAX_ENTRIES = 10000
CLEANUP_INTERVAL = 100


@dataclass
class RateLimitEntry:
    """Track requests for a single client."""
    timestamps: list[float] = field(default_factory=list)
    last_access: float = field(default_factory=time.monotonic)


class InMemoryRateLimiter:
    """In-memory rate limiter with sliding window algorithm and memory management."""

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}
        self._request_count = 0

    def _cleanup_old_requests(self, entry: RateLimitEntry, window_seconds: int, now: float) -> None:
        cutoff = now - window_seconds
        entry.timestamps = [ts for ts in entry.timestamps if ts > cutoff]

    def _cleanup_stale_entries(self, max_age_seconds: int, now: float) -> None:
        cutoff = now - max_age_seconds
        stale_keys = [
            key for key, entry in self._entries.items()
            if entry.last_access < cutoff
        ]
        for key in stale_keys:
            del self._entries[key]
        if stale_keys:
            logger.debug("Cleaned up %d stale rate limit entries", len(stale_keys))

    def _enforce_max_entries(self) -> None:
        if len(self._entries) <= MAX_ENTRIES:
            return
        sorted_entries = sorted(self._entries.items(), key=lambda item: item[1].last_access)
        entries_to_remove = len(self._entries) - MAX_ENTRIES + 100
        for key, _ in sorted_entries[:entries_to_remove]:
            del self._entries[key]
        logger.warning(
            "Rate limit entries exceeded %d, removed %d oldest entries",
            MAX_ENTRIES, entries_to_remove,
        )

    def is_allowed(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        """
        Check if request is allowed under rate limit.

        Returns:
            tuple[bool, int]: (is_allowed, retry_after_seconds)
        """
        now = time.monotonic()
        entry = self._entries.get(key)
        if entry is None:
            entry = RateLimitEntry()
            self._entries[key] = entry
        entry.last_access = now

        self._cleanup_old_requests(entry, window_seconds, now)

        if len(entry.timestamps) >= max_requests:
            retry_after = int(min(entry.timestamps) + window_seconds - now) + 1
            return False, max(1, retry_after)

        entry.timestamps.append(now)

        self._request_count += 1
        if self._request_count % CLEANUP_INTERVAL == 0:
            self._cleanup_stale_entries(window_seconds * 2, now)
            self._enforce_max_entries()

        return True, 0

    def reset(self) -> None:
        self._entries.clear()
        self._request_count = 0


limiter = InMemoryRateLimiter()


def get_client_identifier(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    if request.client:
        return f"ip:{request.client.host}"
    return f"ua:{request.headers.get('User-Agent', '')}"


def check_rate_limit(
    request: Request,
    max_requests: int | None = None,
    window_seconds: int | None = None,
    key_suffix: str = "",
) -> None:
    """
    Imperative rate limit check.

    Raises HTTPException(429) if the client exceeded the limit.
    """
    if not settings.rate_limit_enabled:
        return

    client_id = get_client_identifier(request)
    key = f"{client_id}:{key_suffix or request.url.path}"
    allowed, retry_after = limiter.is_allowed(
        key,
        max_requests or settings.rate_limit_requests,
        window_seconds or settings.rate_limit_window_seconds,
    )
    if not allowed:
        logger.warning(
            "Rate limit exceeded for %s on %s, retry_after=%ds",
            client_id,
            request.url.path,
            retry_after,
        )
        audit_rate_limit_exceeded(request, request.url.path, retry_after)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Demasiadas solicitudes. Inténtalo de nuevo en {retry_after} segundos.",
            headers={"Retry-After": str(retry_after)},
        )
