"""Import workflow: turn queued user records into user import jobs.

The new-users queue is drained into a CSV payload shaped by the new pool's
CSV header. A job never exceeds 500,000 users or 100,000,000 bytes; messages
that did not fit stay on the queue for the next job. Alongside the CSV, a
mapping file from CSV line number to user ``sub`` is stored in S3 so failed
lines reported by the import job can be traced back.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import requests
from botocore.exceptions import ClientError

from directory_sync.errors import ConfigurationError, ImportJobFailedError, MissingIdentityError
from directory_sync.models.events import ImportUsersResult
from directory_sync.models.records import attribute_value
from directory_sync.models.settings import EnvSettings
from directory_sync.notifications import Notifier
from directory_sync.sync.batch_writer import BatchWriter, QueueDestination
from directory_sync.sync.deadline import DeadlineGovernor
from directory_sync.sync.retry import RetryPolicy
from directory_sync.utils.clock import sleep_ms
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

IMPORT_STATES = ("ImportNewUsers", "Parallel: ImportNewUsers")
CHECK_JOB_STATES = ("CheckUserImportJob", "Parallel: CheckUserImportJob")

MAX_USERS_PER_JOB = 500000
MAX_UPLOAD_BYTES = 100000000
RECEIVE_WAIT_SECONDS = 20
UPLOAD_TIMEOUT_SECONDS = 300
JOB_NAME = "cognito-user-profiles-export-reference-architecture"
MAPPING_FILE_HEADER = "userImportCsvLineNumber,userSub\n"

START_JOB_RETRY = RetryPolicy(base_ms=100, max_ms=10 * 1000, max_attempts=5)
RUNNING_JOB_STATUSES = ("Pending", "InProgress")
SUCCEEDED_JOB_STATUS = "Succeeded"

_FALSE_DEFAULT_HEADERS = ("email_verified", "phone_number_verified")


def _escape(value: str) -> str:
    # The import job treats '\,' as a literal comma
    return value.replace(",", "\\,")


def format_csv_header(headers: Sequence[str]) -> str:
    return ",".join(headers) + "\n"


def format_csv_line(headers: Sequence[str], user: Mapping[str, Any]) -> str:
    """Render one backup user record as a line matching the pool's CSV header."""
    attributes = user.get("userAttributes") or []
    values: List[str] = []
    for header in headers:
        if header == "cognito:username":
            value = str(user.get("pseudoUsername"))
        elif header == "cognito:mfa_enabled":
            value = "false"
        else:
            found = attribute_value(attributes, header)
            if found is None:
                value = "false" if header in _FALSE_DEFAULT_HEADERS else ""
            else:
                value = str(found)
        values.append(_escape(value))
    return ",".join(values) + "\n"


def user_sub(user: Mapping[str, Any]) -> str:
    value = attribute_value(user.get("userAttributes") or [], "sub")
    if not value:
        raise MissingIdentityError("Unable to extract user's sub attribute")
    return value


class CsvPayload:
    """Accumulates CSV lines and the line-number mapping under the job caps."""

    def __init__(
        self,
        headers: Sequence[str],
        *,
        max_users: int = MAX_USERS_PER_JOB,
        max_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self.headers = list(headers)
        self.max_users = max_users
        self.max_bytes = max_bytes
        self._lines = [format_csv_header(self.headers)]
        self._mapping = [MAPPING_FILE_HEADER]
        self.byte_size = len(self._lines[0].encode("utf-8"))
        self.count = 0
        self.full = self.byte_size >= max_bytes

    def add(self, user: Mapping[str, Any]) -> bool:
        """Append ``user``; False once the next line would break a cap.

        The first user is always admitted so every job makes progress.
        """
        line = format_csv_line(self.headers, user)
        size = len(line.encode("utf-8"))
        if self.count > 0:
            if self.full or self.count >= self.max_users or self.byte_size + size >= self.max_bytes:
                self.full = True
                return False
        sub = user_sub(user)
        self._lines.append(line)
        self.byte_size += size
        self.count += 1
        self._mapping.append(f"{self.count},{sub}\n")
        if self.count >= self.max_users or self.byte_size >= self.max_bytes:
            self.full = True
        return True

    @property
    def csv(self) -> str:
        return "".join(self._lines)

    @property
    def mapping_file(self) -> str:
        return "".join(self._mapping)


class UserImporter:
    def __init__(
        self,
        *,
        cognito: Any,
        sqs: Any,
        s3: Any,
        settings: EnvSettings,
        governor: DeadlineGovernor,
        new_user_pool_id: str,
        notifier: Optional[Notifier] = None,
        writer: Optional[BatchWriter] = None,
        http: Any = None,
        receive_wait_seconds: int = RECEIVE_WAIT_SECONDS,
        sleep: Callable[[float], None] = sleep_ms,
    ) -> None:
        self._cognito = cognito
        self._sqs = sqs
        self._s3 = s3
        self._settings = settings
        self._governor = governor
        self._pool_id = new_user_pool_id
        self._notifier = notifier or Notifier(settings)
        self._writer = writer or BatchWriter()
        self._http = http or requests
        self._receive_wait_seconds = receive_wait_seconds
        self._sleep = sleep

    def run(self, state_name: str, state_input: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(state_input)
        result["StateName"] = state_name
        if state_name in IMPORT_STATES:
            result.update(self.import_users().to_output())
        elif state_name in CHECK_JOB_STATES:
            result.update(self.check_import_job(state_input.get("ImportJobId")))
        else:
            raise ConfigurationError(f"Unknown StateName: {state_name}")
        return {"result": result}

    def import_users(self) -> ImportUsersResult:
        self._settings.require(
            "new_users_queue_url", "user_import_cloudwatch_role_arn", "user_import_job_mapping_files_bucket"
        )
        queue = QueueDestination(self._sqs, self._settings.new_users_queue_url or "")
        output = ImportUsersResult()
        payload: Optional[CsvPayload] = None

        while True:
            messages = queue.receive(wait_seconds=self._receive_wait_seconds)
            if not messages:
                logger.info("No messages in queue")
                output.queue_empty = True
                break

            output.queue_empty = False
            if payload is None:
                payload = CsvPayload(self._csv_header())
            consumed = [m for m in messages if payload.add(json.loads(m["Body"]))]
            logger.info(
                "Read messages off the new users queue",
                extra={"received": len(messages), "admitted": len(consumed), "users": payload.count},
            )
            if consumed:
                self._writer.delete_batch(consumed, queue)
            if payload.full or not self._governor.has_capacity():
                break

        if payload is not None and payload.count > 0:
            logger.info("Creating user import job", extra={"users": payload.count, "bytes": payload.byte_size})
            job_id, status = self._run_job(payload)
            output.import_job_id = job_id
            output.import_job_status = status or ""
            # The queue is checked again once the job completes
            output.queue_empty = False
        return output

    def check_import_job(self, job_id: Optional[str]) -> Dict[str, Any]:
        resp = self._cognito.describe_user_import_job(UserPoolId=self._pool_id, JobId=job_id)
        job = resp.get("UserImportJob") or {}
        status = job.get("Status")
        logger.info("Described user import job", extra={"job_id": job_id, "status": status})

        if job and status not in RUNNING_JOB_STATUSES:
            self._notifier.send_metric(
                {
                    "EventType": "user-import-job-ended",
                    "EventDetails": {
                        "JobStatus": status,
                        "CreationDate": job.get("CreationDate"),
                        "StartDate": job.get("StartDate"),
                        "CompletionDate": job.get("CompletionDate"),
                        "CompletionMessage": job.get("CompletionMessage"),
                        "Region": self._settings.region,
                    },
                }
            )
        if job and status not in RUNNING_JOB_STATUSES and status != SUCCEEDED_JOB_STATUS:
            failed_id = job.get("JobId") or job_id or ""
            raise ImportJobFailedError(
                f'User import job with ID "{failed_id}" was detected to have a status of "{status}" in '
                f"{self._settings.region}.\n\nPlease check the CloudWatch logs for this user import job and use "
                f"the mapping file ({failed_id}-user-mapping.csv) saved in the S3 bucket "
                f"({self._settings.user_import_job_mapping_files_bucket}) to cross-reference the line numbers "
                "reported in the user import job logs",
                job_id=failed_id,
                status=str(status),
            )
        return {"ImportJobId": job_id, "ImportJobStatus": status}

    def _csv_header(self) -> List[str]:
        resp = self._cognito.get_csv_header(UserPoolId=self._pool_id)
        headers = list(resp.get("CSVHeader") or [])
        logger.info("Got CSV header", extra={"columns": len(headers)})
        return headers

    def _run_job(self, payload: CsvPayload) -> Tuple[str, str]:
        resp = self._cognito.create_user_import_job(
            CloudWatchLogsRoleArn=self._settings.user_import_cloudwatch_role_arn,
            UserPoolId=self._pool_id,
            JobName=JOB_NAME,
        )
        job = resp["UserImportJob"]
        job_id, upload_url = job["JobId"], job["PreSignedUrl"]
        logger.info("User import job created", extra={"job_id": job_id})

        self._s3.put_object(
            Bucket=self._settings.user_import_job_mapping_files_bucket,
            Key=f"{job_id}-user-mapping.csv",
            ServerSideEncryption="AES256",
            Body=payload.mapping_file.encode("utf-8"),
        )
        logger.info("User import job mapping file uploaded", extra={"job_id": job_id})

        upload = self._http.put(
            upload_url,
            data=payload.csv.encode("utf-8"),
            headers={"x-amz-server-side-encryption": "aws:kms"},
            timeout=UPLOAD_TIMEOUT_SECONDS,
        )
        upload.raise_for_status()
        logger.info("CSV uploaded", extra={"job_id": job_id, "bytes": payload.byte_size})

        started = START_JOB_RETRY.run(
            lambda: self._cognito.start_user_import_job(UserPoolId=self._pool_id, JobId=job_id),
            retry_on=lambda exc: isinstance(exc, ClientError),
            sleep=self._sleep,
            description="start_user_import_job",
        )
        status = started["UserImportJob"]["Status"]
        logger.info("User import job started", extra={"job_id": job_id, "status": status})
        return job_id, status
