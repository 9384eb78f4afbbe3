"""botocore client configuration shared by the workflow Lambdas."""

from __future__ import annotations

from typing import Any, Dict, Optional

from botocore.config import Config

from directory_sync.models.settings import EnvSettings


def client_config(settings: EnvSettings, *, timeout_seconds: Optional[int] = None) -> Config:
    """Return a Config tagging calls with the solution user agent when configured.

    botocore's own retries are kept to a single standard-mode attempt so the
    workflow's RetryPolicy/DeadlineGovernor pair decides about backoff.
    """
    kwargs: Dict[str, Any] = {"retries": {"max_attempts": 1, "mode": "standard"}}
    if settings.region:
        kwargs["region_name"] = settings.region
    if settings.user_agent_extra:
        kwargs["user_agent_extra"] = settings.user_agent_extra
    if timeout_seconds:
        kwargs["connect_timeout"] = timeout_seconds
        kwargs["read_timeout"] = timeout_seconds
    return Config(**kwargs)
