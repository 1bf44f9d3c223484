#status_vocabulary.py
from dataclasses import dataclass
from typing import Optional

from exceptions import InvalidTransition

PENDING = "pending"
CONFIRMED = "confirmed"
SHIPPED = "shipped"
DELIVERED = "delivered"
CANCELLED = "cancelled"

# sentinels (never a fulfillment state of their own)
MIXED = "mixed"
ALL = "all"
ALL_LABEL = "All Orders"

PROGRESS_STEPS = (PENDING, CONFIRMED, SHIPPED, DELIVERED)


@dataclass(frozen=True)
class StatusInfo:
    key: str
    rank: Optional[int]       # None for cancelled: not part of the progress bar
    label: str
    description: str
    icon: str
    color: str


STATUSES = {
    PENDING: StatusInfo(PENDING, 0, "Pending", "Order received, waiting for the farmer to confirm.", "fa-clock", "yellow"),
    CONFIRMED: StatusInfo(CONFIRMED, 1, "Confirmed", "Farmer accepted the order and is preparing it.", "fa-check", "blue"),
    SHIPPED: StatusInfo(SHIPPED, 2, "Shipped", "Order is on the way to the customer.", "fa-truck", "purple"),
    DELIVERED: StatusInfo(DELIVERED, 3, "Delivered", "Order reached the customer.", "fa-check-circle", "green"),
    CANCELLED: StatusInfo(CANCELLED, None, "Cancelled", "Order was cancelled and will not be fulfilled.", "fa-times-circle", "red"),
}

ALLOWED_TRANSITIONS = {
    PENDING: {CONFIRMED, CANCELLED},
    CONFIRMED: {SHIPPED},
    SHIPPED: {DELIVERED},
    DELIVERED: set(),   # terminal
    CANCELLED: set(),   # terminal
}

CONFIRM_PROMPTS = {
    CONFIRMED: "confirm this order? This will notify the customer that their order has been accepted.",
    SHIPPED: "mark this order as shipped? This will notify the customer that their order is on the way.",
    DELIVERED: "mark this order as delivered? This will complete the order and notify the customer.",
    CANCELLED: "cancel this order? This action cannot be undone and will notify the customer.",
}

SUCCESS_MESSAGES = {
    CONFIRMED: "Order confirmed! Customer has been notified.",
    SHIPPED: "Order marked as shipped! Customer has been notified with tracking information.",
    DELIVERED: "Order completed! Customer has been notified of successful delivery.",
    CANCELLED: "Order cancelled. Customer has been notified.",
}


def is_known_status(value) -> bool:
    return isinstance(value, str) and value.strip().lower() in STATUSES


def resolve_status(value) -> str:
    """Map any raw status value onto the vocabulary. Unknown, empty or None -> pending."""
    if is_known_status(value):
        return value.strip().lower()
    return PENDING


def status_info(value) -> StatusInfo:
    return STATUSES[resolve_status(value)]


def rank(value) -> Optional[int]:
    return status_info(value).rank


def progress_fraction(value) -> float:
    # cancelled has no rank; for the bar only it counts as the first step
    r = rank(value)
    return ((r if r is not None else 0) + 1) / len(PROGRESS_STEPS)


def next_statuses(current) -> list[str]:
    """Targets reachable from `current`, in vocabulary order (drives the dashboard's action buttons)."""
    allowed = ALLOWED_TRANSITIONS[resolve_status(current)]
    return [s for s in STATUSES if s in allowed]


def validate_transition(current, target: str) -> str:
    """Return the normalized target status, or raise InvalidTransition."""
    cur = resolve_status(current)
    if not is_known_status(target):
        raise InvalidTransition(cur, str(target))
    tgt = target.strip().lower()
    if tgt not in ALLOWED_TRANSITIONS[cur]:
        raise InvalidTransition(cur, tgt)
    return tgt


def confirmation_prompt(target: str) -> str:
    key = (target or "").strip().lower()
    return "Are you sure you want to " + CONFIRM_PROMPTS.get(key, f"mark this order as {key}?")


def success_message(target: str) -> str:
    key = (target or "").strip().lower()
    return SUCCESS_MESSAGES.get(key, f"Order status updated to {key} successfully!")
