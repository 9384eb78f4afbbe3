"""Exception types shared by the workflow Lambdas.

Retryable upstream failures are classified by :func:`is_retryable`; everything
else (configuration, identity derivation, failed import jobs) is fatal and is
propagated to the state machine unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)


RETRYABLE_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "RequestThrottled",
        "RequestThrottledException",
        "ProvisionedThroughputExceededException",
        "LimitExceededException",
        "SlowDown",
        "InternalErrorException",
        "InternalFailure",
        "InternalServerError",
        "ServiceUnavailable",
        "ServiceUnavailableException",
        "RequestTimeout",
        "RequestTimeoutException",
    }
)

_TRANSPORT_ERRORS = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)


class DirectorySyncError(Exception):
    """Base class for workflow errors."""


class ConfigurationError(DirectorySyncError, ValueError):
    """Raised when environment configuration is missing or malformed."""


class MissingIdentityError(DirectorySyncError):
    """Raised when a directory user has no ``sub`` attribute."""


class MissingPseudoIdentifierError(DirectorySyncError):
    """Raised when the pseudo username for a user cannot be resolved."""


class UnsupportedUserPoolError(DirectorySyncError):
    """Raised when the primary user pool uses a configuration the workflows cannot copy."""


class BatchSubmissionError(DirectorySyncError):
    """Raised when a batch destination rejects entries permanently."""

    def __init__(self, message: str, failed: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.failed = failed or []


class ImportJobFailedError(DirectorySyncError):
    """Raised when a user import job ends in a status other than Succeeded."""

    def __init__(self, message: str, job_id: str, status: str) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.status = status


class QueueNotEmptyError(DirectorySyncError):
    """Raised when a workflow queue still holds messages before a run starts."""


def error_code(exc: BaseException) -> Optional[str]:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def is_retryable(exc: BaseException) -> bool:
    """Return True for throttling, 5xx and transport errors raised by botocore."""
    if isinstance(exc, _TRANSPORT_ERRORS):
        return True
    if not isinstance(exc, ClientError):
        return False
    if error_code(exc) in RETRYABLE_ERROR_CODES:
        return True
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    try:
        return int(status) >= 500
    except (TypeError, ValueError):
        return False
