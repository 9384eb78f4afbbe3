"""Workflow notifications (SNS) and anonymous operational metrics (HTTP POST).

Both are best effort: a failure is logged and reported through the return
value, never raised to the calling task.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError

from directory_sync.models.settings import EnvSettings
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

METRICS_TIMEOUT_SECONDS = 10


class Notifier:
    """Helper for publishing workflow messages and metrics."""

    def __init__(self, settings: EnvSettings, sns_client: Any = None, http: Any = None):
        self._settings = settings
        self._sns = sns_client
        self._http = http or requests.Session()

    def publish_message(self, message: str) -> bool:
        """Publish ``message`` to the notification topic."""
        topic = self._settings.notification_topic
        if not topic or self._sns is None:
            logger.warning("NOTIFICATION_TOPIC not configured, skipping notification")
            return False
        try:
            resp = self._sns.publish(TopicArn=topic, Message=message)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Failed to publish notification", extra={"error": str(exc)})
            return False
        logger.info("Message published", extra={"message_id": resp.get("MessageId")})
        return True

    def send_metric(self, data: Dict[str, Any]) -> bool:
        """POST an anonymous metric when SEND_METRIC is 'Yes'."""
        if not self._settings.metrics_enabled:
            return False
        payload = {
            "Solution": self._settings.solution_id,
            "Version": self._settings.solution_version,
            "UUID": self._settings.metrics_anonymous_uuid,
            "TimeStamp": _utc_timestamp(),
            "Data": data,
        }
        logger.info("Sending anonymized metric", extra={"metric": payload})
        try:
            resp = self._http.post(
                self._settings.metrics_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=METRICS_TIMEOUT_SECONDS,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Failed to send anonymized metric", extra={"error": str(exc)})
            return False
        logger.info("Anonymized metric sent", extra={"status_code": resp.status_code})
        return True


def _utc_timestamp(now: Optional[datetime] = None) -> str:
    current = now or datetime.now(timezone.utc)
    return current.strftime("%Y-%m-%dT%H:%M:%S.") + f"{current.microsecond // 1000:03d}Z"
