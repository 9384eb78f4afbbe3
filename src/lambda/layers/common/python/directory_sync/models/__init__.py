"""Models subpackage exposed via Common Layer."""

from .events import (
    CleanupInput,
    CleanupResult,
    ExportGroupEvent,
    ExportUsersEvent,
    ExportUsersInGroupEvent,
    ExportUsersInGroupOutput,
    ExportUsersOutput,
    ImportUsersResult,
    ListGroupsEvent,
    ListGroupsOutput,
    PoolConfig,
    ScanTableInput,
    ScanTableResult,
    TaskEvent,
    UpdateNewUsersResult,
)
from .records import RecordKind, RecordTypes
from .settings import EnvSettings

__all__ = [
    "CleanupInput",
    "CleanupResult",
    "EnvSettings",
    "ExportGroupEvent",
    "ExportUsersEvent",
    "ExportUsersInGroupEvent",
    "ExportUsersInGroupOutput",
    "ExportUsersOutput",
    "ImportUsersResult",
    "ListGroupsEvent",
    "ListGroupsOutput",
    "PoolConfig",
    "RecordKind",
    "RecordTypes",
    "ScanTableInput",
    "ScanTableResult",
    "TaskEvent",
    "UpdateNewUsersResult",
]
