"""Who may mutate a listing or a lead: its owner or any admin."""

from typing import Any, Dict

from errors import Forbidden


def is_owner(principal, resource: Dict[str, Any]) -> bool:
    owner = resource.get("owner")
    if isinstance(owner, dict):
        owner = owner.get("id")
    return owner is not None and str(owner) == str(principal.id)


def is_admin(principal) -> bool:
    return principal.is_admin


def can_mutate(principal, resource: Dict[str, Any]) -> bool:
    return is_owner(principal, resource) or is_admin(principal)


def ensure_can_mutate(principal, resource: Dict[str, Any], action: str = "modify", noun: str = "resource") -> None:
    if not can_mutate(principal, resource):
        raise Forbidden(f"Not authorized to {action} this {noun}.")


def ensure_can_escalate(principal) -> None:
    # ownership is irrelevant here: owners cannot approve their own listings
    if not is_admin(principal):
        raise Forbidden("Access denied. Admin privileges required.")
