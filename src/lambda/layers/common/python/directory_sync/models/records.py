"""Backup table record shapes.

The backup table is keyed by ``id`` (hash) and ``type`` (range). Every record
written by an export run carries the run's ``lastConfirmedInUserPool`` marker
so the cleanup pass can find the records the run did not refresh.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from directory_sync.models.settings import EnvSettings


USER_ID_PREFIX = "USER-"
GROUP_ID_PREFIX = "GROUP-"
GROUP_MEMBER_PREFIX = "GROUP_MEMBER-"
LATEST_EXPORT_TIMESTAMP_ID = "latest-export-timestamp"
FRESHNESS_ATTRIBUTE = "lastConfirmedInUserPool"


class RecordKind(str, Enum):
    USER = "user"
    GROUP = "group"
    GROUP_MEMBERSHIP = "group-membership"
    TIMESTAMP_MARKER = "timestamp-marker"


@dataclass(frozen=True)
class RecordTypes:
    """Values stored in the ``type`` attribute, configurable per deployment."""

    user: str = "user"
    group: str = "group"
    timestamp: str = "timestamp"

    @staticmethod
    def from_settings(settings: EnvSettings) -> "RecordTypes":
        return RecordTypes(user=settings.type_user, group=settings.type_group, timestamp=settings.type_timestamp)

    def classify(self, item: Mapping[str, Any]) -> RecordKind:
        item_type = item.get("type")
        if item_type == self.timestamp:
            return RecordKind.TIMESTAMP_MARKER
        if item_type == self.user:
            return RecordKind.USER
        if item_type == self.group:
            return RecordKind.GROUP
        return RecordKind.GROUP_MEMBERSHIP


def user_record(
    user: Mapping[str, Any],
    *,
    subject: str,
    pseudo_username: str,
    marker: int,
    region: Optional[str],
    types: RecordTypes,
) -> Dict[str, Any]:
    return {
        "id": f"{USER_ID_PREFIX}{subject}",
        "type": types.user,
        "username": user.get("Username"),
        "pseudoUsername": pseudo_username,
        "userAttributes": list(user.get("Attributes") or []),
        "userEnabled": bool(user.get("Enabled", False)),
        "userStatus": user.get("UserStatus"),
        FRESHNESS_ATTRIBUTE: marker,
        "lastUpdatedRegion": region,
    }


def group_record(
    *,
    group_name: str,
    description: str,
    precedence: int,
    last_modified_date: Optional[str],
    marker: int,
    region: Optional[str],
    types: RecordTypes,
) -> Dict[str, Any]:
    return {
        "id": f"{GROUP_ID_PREFIX}{group_name}",
        "type": types.group,
        "groupName": group_name,
        "groupDescription": description,
        "groupPrecedence": precedence,
        "groupLastModifiedDate": last_modified_date,
        FRESHNESS_ATTRIBUTE: marker,
        "lastUpdatedRegion": region,
    }


def group_member_record(
    user: Mapping[str, Any],
    *,
    group_name: str,
    subject: str,
    pseudo_username: str,
    marker: int,
    region: Optional[str],
) -> Dict[str, Any]:
    return {
        "id": f"{GROUP_MEMBER_PREFIX}{group_name}",
        "type": f"{GROUP_MEMBER_PREFIX}{subject}",
        "groupUser": user.get("Username"),
        "groupPseudoUsername": pseudo_username,
        "groupName": group_name,
        FRESHNESS_ATTRIBUTE: marker,
        "lastUpdatedRegion": region,
    }


def timestamp_marker_record(export_timestamp: int, types: RecordTypes) -> Dict[str, Any]:
    return {
        "id": LATEST_EXPORT_TIMESTAMP_ID,
        "type": types.timestamp,
        "latestExportTimestamp": export_timestamp,
    }


def record_key(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {"id": item["id"], "type": item["type"]}


def attribute_value(attributes: List[Mapping[str, Any]], name: str) -> Optional[str]:
    for attr in attributes or []:
        if attr.get("Name") == name:
            return attr.get("Value")
    return None
