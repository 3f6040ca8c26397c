"""Audit logging for security-relevant operations."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import Request


logger = logging.getLogger("babyregistry.audit")

SENSITIVE_KEYS = ("password", "token", "cancellation_token", "secret", "authorization")


class AuditAction(str, Enum):
    """Audit action types."""
    LOGIN = "login"
    LOGOUT = "logout"
    LOGIN_FAILED = "login_failed"
    REGISTER = "register"

    REGISTRY_CREATE = "registry_create"
    GIFT_CREATE = "gift_create"
    GIFT_UPDATE = "gift_update"
    GIFT_DELETE = "gift_delete"

    RESERVATION_CREATE = "reservation_create"
    RESERVATION_CANCEL = "reservation_cancel"

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


def audit_log(
    action: AuditAction,
    request: Request | None = None,
    user_id: int | str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """
    Log an audit event.

    Args:
        action: The action being performed
        request: FastAPI request object (for IP, user agent)
        user_id: ID of the user performing the action
        details: Additional details about the action
        success: Whether the action was successful
    """
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "success": success,
    }

    if user_id is not None:
        event["user_id"] = str(user_id)

    if request:
        client_host = request.client.host if request.client else None
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_host = forwarded.split(",")[0].strip()

        event["ip"] = client_host
        event["user_agent"] = request.headers.get("User-Agent", "")[:200]
        event["request_id"] = request.headers.get("X-Request-Id", "")

    if details:
        event["details"] = {
            key: "***REDACTED***" if key in SENSITIVE_KEYS else value
            for key, value in details.items()
        }

    if success:
        logger.info("AUDIT: %s", event)
    else:
        logger.warning("AUDIT: %s", event)


def audit_login_success(request: Request, user_id: int, username: str) -> None:
    audit_log(AuditAction.LOGIN, request=request, user_id=user_id, details={"username": username})


def audit_login_failed(request: Request, username: str, reason: str) -> None:
    audit_log(
        AuditAction.LOGIN_FAILED,
        request=request,
        details={"username": username, "reason": reason},
        success=False,
    )


def audit_logout(request: Request) -> None:
    audit_log(AuditAction.LOGOUT, request=request)


def audit_register(request: Request, user_id: int, username: str) -> None:
    audit_log(AuditAction.REGISTER, request=request, user_id=user_id, details={"username": username})


def audit_gift_action(
    action: AuditAction,
    request: Request,
    user_id: int,
    gift_id: int,
    registry_id: int,
) -> None:
    audit_log(
        action,
        request=request,
        user_id=user_id,
        details={"gift_id": gift_id, "registry_id": registry_id},
    )


def audit_reservation(action: AuditAction, request: Request, gift_id: int, registry_id: int) -> None:
    """Guests are anonymous; only the gift and registry are recorded."""
    audit_log(action, request=request, details={"gift_id": gift_id, "registry_id": registry_id})


def audit_rate_limit_exceeded(request: Request, endpoint: str, retry_after: int) -> None:
    audit_log(
        AuditAction.RATE_LIMIT_EXCEEDED,
        request=request,
        details={"endpoint": endpoint, "retry_after": retry_after},
        success=False,
    )
