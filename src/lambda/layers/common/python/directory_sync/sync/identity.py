"""Identity derivation for exported directory users."""

from __future__ import annotations

from typing import Any, Mapping

from directory_sync.errors import MissingIdentityError, MissingPseudoIdentifierError
from directory_sync.models.events import PoolConfig
from directory_sync.models.records import attribute_value


SUBJECT_ATTRIBUTE = "sub"


def resolve_subject(user: Mapping[str, Any]) -> str:
    value = attribute_value(user.get("Attributes") or [], SUBJECT_ATTRIBUTE)
    if not value:
        raise MissingIdentityError("Unable to determine the sub attribute for user")
    return value


def resolve_pseudo_username(user: Mapping[str, Any], pool: PoolConfig) -> str:
    """Pick the username used for the user in the import CSV.

    No alternate sign-in attribute: the native username. One: that attribute's
    value. Several: the single non-blank attribute among them.
    """
    configured = pool.username_attributes
    attributes = user.get("Attributes") or []
    pseudo_username = None
    if not configured:
        pseudo_username = user.get("Username")
    elif len(configured) == 1:
        pseudo_username = attribute_value(attributes, configured[0])
    else:
        candidates = [
            a.get("Value")
            for a in attributes
            if a.get("Name") in configured and str(a.get("Value") or "").strip()
        ]
        if len(candidates) == 1:
            pseudo_username = candidates[0]

    if not pseudo_username:
        raise MissingPseudoIdentifierError("Unable to determine the pseudoUsername for the user")
    return pseudo_username
