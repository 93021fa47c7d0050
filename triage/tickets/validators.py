"""Local input checks run before anything is sent to the ticket API."""
from __future__ import annotations

from typing import Iterable

from .errors import ValidationFailure
from .state import TicketPriority, TicketStatus

COMMENT_MIN_LENGTH = 10
COMMENT_MAX_LENGTH = 2000
STATUS_REASON_MAX_LENGTH = 500


def validate_comment(
    text: str,
    *,
    min_length: int = COMMENT_MIN_LENGTH,
    max_length: int = COMMENT_MAX_LENGTH,
) -> str:
    """Return the comment text if its trimmed length is within bounds."""

    stripped = (text or "").strip()
    if len(stripped) < min_length:
        raise ValidationFailure(
            f"Comment must be at least {min_length} characters", field="comment"
        )
    if len(stripped) > max_length:
        raise ValidationFailure(
            f"Comment must be at most {max_length} characters", field="comment"
        )
    return text


def validate_status_reason(reason: str | None, *, max_length: int = STATUS_REASON_MAX_LENGTH) -> str | None:
    if not reason or not reason.strip():
        return None
    if len(reason) > max_length:
        raise ValidationFailure(
            f"Reason must be at most {max_length} characters", field="status_reason"
        )
    return reason


def validate_status(value: str | TicketStatus) -> TicketStatus:
    try:
        return TicketStatus(value)
    except ValueError as exc:
        allowed = ", ".join(status.value for status in TicketStatus)
        raise ValidationFailure(f"Invalid status. Must be one of: {allowed}", field="status") from exc


def validate_priority(value: str | TicketPriority) -> TicketPriority:
    try:
        return TicketPriority(value)
    except ValueError as exc:
        allowed = ", ".join(priority.value for priority in TicketPriority)
        raise ValidationFailure(f"Invalid priority. Must be one of: {allowed}", field="priority") from exc


def validate_page(page: int) -> int:
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationFailure("Page must be a positive integer", field="page")
    return page


def validate_page_size(page_size: int, allowed: Iterable[int]) -> int:
    allowed_sizes = tuple(allowed)
    if isinstance(page_size, bool) or page_size not in allowed_sizes:
        sizes = ", ".join(str(size) for size in allowed_sizes)
        raise ValidationFailure(f"Page size must be one of: {sizes}", field="page_size")
    return page_size
