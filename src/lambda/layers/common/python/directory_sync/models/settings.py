"""Environment settings helpers provided via Common Layer."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Optional

from directory_sync.errors import ConfigurationError


# Maps EnvSettings attribute -> environment variable name
_ENV_NAMES = {
    "environment": "ENVIRONMENT",
    "region": "AWS_REGION",
    "user_pool_id": "USER_POOL_ID",
    "backup_table_name": "BACKUP_TABLE_NAME",
    "cognito_tps_raw": "COGNITO_TPS",
    "queue_url": "QUEUE_URL",
    "new_users_queue_url": "NEW_USERS_QUEUE_URL",
    "new_users_updates_queue_url": "NEW_USERS_UPDATES_QUEUE_URL",
    "user_import_cloudwatch_role_arn": "USER_IMPORT_CLOUDWATCH_ROLE_ARN",
    "user_import_job_mapping_files_bucket": "USER_IMPORT_JOB_MAPPING_FILES_BUCKET",
    "notification_topic": "NOTIFICATION_TOPIC",
    "sns_message_preference": "SNS_MESSAGE_PREFERENCE",
    "send_metric": "SEND_METRIC",
    "metrics_anonymous_uuid": "METRICS_ANONYMOUS_UUID",
    "metrics_url": "METRICS_URL",
    "solution_id": "SOLUTION_ID",
    "solution_version": "SOLUTION_VERSION",
    "is_primary_region": "IS_PRIMARY_REGION",
    "type_user": "TYPE_USER",
    "type_group": "TYPE_GROUP",
    "type_timestamp": "TYPE_TIMESTAMP",
}

DEFAULT_METRICS_URL = "https://metrics.awssolutionsbuilder.com/generic"


@dataclass(frozen=True)
class EnvSettings:
    environment: Optional[str]
    region: Optional[str]
    user_pool_id: Optional[str]
    backup_table_name: Optional[str]
    cognito_tps_raw: Optional[str]
    queue_url: Optional[str]
    new_users_queue_url: Optional[str]
    new_users_updates_queue_url: Optional[str]
    user_import_cloudwatch_role_arn: Optional[str]
    user_import_job_mapping_files_bucket: Optional[str]
    notification_topic: Optional[str]
    sns_message_preference: Optional[str]
    send_metric: Optional[str]
    metrics_anonymous_uuid: Optional[str]
    metrics_url: str
    solution_id: Optional[str]
    solution_version: Optional[str]
    is_primary_region: Optional[str]
    type_user: str
    type_group: str
    type_timestamp: str

    @staticmethod
    def load() -> "EnvSettings":
        values = {}
        for f in fields(EnvSettings):
            raw = os.environ.get(_ENV_NAMES[f.name])
            values[f.name] = raw.strip() if isinstance(raw, str) and raw.strip() else None
        values["metrics_url"] = values["metrics_url"] or DEFAULT_METRICS_URL
        values["type_user"] = values["type_user"] or "user"
        values["type_group"] = values["type_group"] or "group"
        values["type_timestamp"] = values["type_timestamp"] or "timestamp"
        return EnvSettings(**values)

    def require(self, *names: str) -> None:
        """Raise ConfigurationError naming the first unset attribute."""
        for name in names:
            if not getattr(self, name):
                raise ConfigurationError(f"{_ENV_NAMES[name]} environment variable is required")

    @property
    def cognito_tps(self) -> int:
        raw = self.cognito_tps_raw
        try:
            value = int(str(raw))
        except (TypeError, ValueError):
            raise ConfigurationError(f"Unable to parse a number from the COGNITO_TPS value ({raw})") from None
        if value < 0:
            raise ConfigurationError(f"COGNITO_TPS must not be negative ({raw})")
        return value

    @property
    def metrics_enabled(self) -> bool:
        return self.send_metric == "Yes"

    @property
    def notify_on_success(self) -> bool:
        return self.sns_message_preference == "INFO_AND_ERRORS"

    @property
    def user_agent_extra(self) -> Optional[str]:
        if self.solution_id and self.solution_version:
            return f"AWSSOLUTION/{self.solution_id}/{self.solution_version}"
        return None
