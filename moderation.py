"""
Listing moderation workflow.

Listings written by members start ``Pending`` and wait for an admin;
listings written by admins are ``Approved`` straight away. Only admins move
a listing between states, along ``TRANSITIONS``:

    Pending  -> Approved | Rejected
    Approved -> Done

``Rejected`` and ``Done`` are terminal. Re-applying the current state is
accepted as a no-op.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from errors import ValidationError
from policy import can_mutate, ensure_can_escalate


class ListingStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    DONE = "Done"


class CreatorRole(str, Enum):
    USER = "User"
    ADMIN = "Admin"


TRANSITIONS: Mapping[ListingStatus, FrozenSet[ListingStatus]] = {
    ListingStatus.PENDING: frozenset({ListingStatus.APPROVED, ListingStatus.REJECTED}),
    ListingStatus.APPROVED: frozenset({ListingStatus.DONE}),
    ListingStatus.REJECTED: frozenset(),
    ListingStatus.DONE: frozenset(),
}

# Fields owners and admins may edit through a general update
EDITABLE_FIELDS: FrozenSet[str] = frozenset({
    "name", "description", "age", "hourly_rate", "night_rate", "phone_no",
    "whatsapp_no", "services", "availability", "city", "state",
})
# Fields only an admin may set; silently dropped for everyone else
ADMIN_FIELDS: FrozenSet[str] = frozenset({"status", "verified", "featured", "rating", "reviews"})


def initial_state(principal) -> Tuple[ListingStatus, CreatorRole]:
    if principal.is_admin:
        return ListingStatus.APPROVED, CreatorRole.ADMIN
    return ListingStatus.PENDING, CreatorRole.USER


def parse_status(value: Any) -> ListingStatus:
    try:
        return ListingStatus(value)
    except ValueError:
        raise ValidationError("Invalid status value.")


def check_transition(current: Any, target: Any) -> ListingStatus:
    cur = parse_status(current)
    new = parse_status(target)
    if new != cur and new not in TRANSITIONS[cur]:
        raise ValidationError(f"Cannot change status from {cur.value} to {new.value}.")
    return new


def transition(principal, listing: Dict[str, Any], target: Any) -> ListingStatus:
    """Admin-only status change; returns the validated new status."""
    if target is None or target == "":
        raise ValidationError("Status field is required.")
    ensure_can_escalate(principal)
    return check_transition(listing.get("status", ListingStatus.PENDING.value), target)


def merge_listing_update(current: Dict[str, Any], payload: Mapping[str, Any], principal) -> Dict[str, Any]:
    """Return the changes a principal's update may apply to ``current``.

    Only allow-listed fields survive. Admin-only fields from a non-admin are
    stripped while the rest of the edit still goes through. Null values are
    ignored so an update can never clear a stored field.
    """
    changes: Dict[str, Any] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if key in EDITABLE_FIELDS:
            changes[key] = value
        elif key in ADMIN_FIELDS and principal.is_admin:
            changes[key] = value

    if "status" in changes:
        changes["status"] = check_transition(current.get("status", ListingStatus.PENDING.value), changes["status"]).value
    return changes


def public_filter() -> Dict[str, Any]:
    return {"status": ListingStatus.APPROVED.value}


def pending_query() -> Tuple[Dict[str, Any], List[Tuple[str, int]]]:
    # oldest first so the longest-waiting listing is reviewed first
    return {"status": ListingStatus.PENDING.value}, [("created_at", 1)]


def all_query(status: Optional[str] = None) -> Tuple[Dict[str, Any], List[Tuple[str, int]]]:
    filter_dict: Dict[str, Any] = {}
    if status:
        filter_dict["status"] = parse_status(status).value
    return filter_dict, [("created_at", -1)]


def visible_to(principal, listing: Dict[str, Any]) -> bool:
    if listing.get("status") == ListingStatus.APPROVED.value:
        return True
    return principal is not None and can_mutate(principal, listing)
