"""Configuration for the docqueue job queue and scheduler."""

import json
import os
from datetime import tzinfo
from typing import Optional

from dateutil import tz

DEFAULT_RETRY_DELAYS = [1.0, 5.0, 15.0, 60.0, 300.0]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid integer in {name}: {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"Invalid number in {name}: {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_retry_delays(raw: str) -> list[float]:
    """Parse a backoff table given as a JSON list or comma separated seconds."""
    raw = raw.strip()
    try:
        if raw.startswith("["):
            delays = [float(item) for item in json.loads(raw)]
        else:
            delays = [float(item) for item in raw.split(",") if item.strip()]
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid retry delays: {raw!r}") from e
    if not delays:
        raise ValueError("Retry delays must contain at least one entry")
    if any(delay <= 0 for delay in delays):
        raise ValueError("Retry delays must be positive")
    return delays


class DocQueueConfig:
    """Configuration object for docqueue."""

    def __init__(
        self,
        max_concurrent_jobs: int = 5,
        retry_delays: Optional[list[float]] = None,
        max_retries: int = 3,
        job_timeout_seconds: float = 300.0,
        cleanup_interval_seconds: float = 3600.0,
        cleanup_retention_days: int = 30,
        idle_poll_seconds: float = 5.0,
        busy_poll_seconds: float = 1.0,
        error_backoff_seconds: float = 5.0,
        jobs_collection: str = "jobs",
        scheduler_tick_seconds: float = 60.0,
        scheduler_timezone: Optional[str] = None,
        scheduler_enabled: bool = True,
        db_dsn: Optional[str] = None,
        auth_token: Optional[str] = None,
        app_base_url: str = "http://localhost:3000",
        scheduled_task_secret: Optional[str] = None,
        email_from: str = "notifications@example.com",
        aws_region: Optional[str] = None,
    ):
        if max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if retry_delays is not None and (
            not retry_delays or any(delay <= 0 for delay in retry_delays)
        ):
            raise ValueError("retry_delays must be a non-empty list of positive seconds")

        self.max_concurrent_jobs = max_concurrent_jobs
        self.retry_delays = list(retry_delays or DEFAULT_RETRY_DELAYS)
        self.max_retries = max_retries
        self.job_timeout_seconds = job_timeout_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.cleanup_retention_days = cleanup_retention_days
        self.idle_poll_seconds = idle_poll_seconds
        self.busy_poll_seconds = busy_poll_seconds
        self.error_backoff_seconds = error_backoff_seconds
        self.jobs_collection = jobs_collection
        self.scheduler_tick_seconds = scheduler_tick_seconds
        self.scheduler_timezone = scheduler_timezone
        self.scheduler_enabled = scheduler_enabled
        self.db_dsn = db_dsn
        self.auth_token = auth_token
        self.app_base_url = app_base_url.rstrip("/")
        self.scheduled_task_secret = scheduled_task_secret
        self.email_from = email_from
        self.aws_region = aws_region

    @classmethod
    def from_env(cls) -> "DocQueueConfig":
        """Create config from environment variables."""
        retry_delays = None
        retry_delays_str = os.getenv("DOCQUEUE_RETRY_DELAYS")
        if retry_delays_str:
            retry_delays = parse_retry_delays(retry_delays_str)

        scheduler_timezone = os.getenv("DOCQUEUE_SCHEDULER_TIMEZONE") or None
        if scheduler_timezone and tz.gettz(scheduler_timezone) is None:
            raise ValueError(
                f"Unknown time zone in DOCQUEUE_SCHEDULER_TIMEZONE: {scheduler_timezone}"
            )

        return cls(
            max_concurrent_jobs=_env_int("DOCQUEUE_MAX_CONCURRENT_JOBS", 5),
            retry_delays=retry_delays,
            max_retries=_env_int("DOCQUEUE_MAX_RETRIES", 3),
            job_timeout_seconds=_env_float("DOCQUEUE_JOB_TIMEOUT_SECONDS", 300.0),
            cleanup_interval_seconds=_env_float(
                "DOCQUEUE_CLEANUP_INTERVAL_SECONDS", 3600.0
            ),
            cleanup_retention_days=_env_int("DOCQUEUE_CLEANUP_RETENTION_DAYS", 30),
            idle_poll_seconds=_env_float("DOCQUEUE_IDLE_POLL_SECONDS", 5.0),
            busy_poll_seconds=_env_float("DOCQUEUE_BUSY_POLL_SECONDS", 1.0),
            error_backoff_seconds=_env_float("DOCQUEUE_ERROR_BACKOFF_SECONDS", 5.0),
            jobs_collection=os.getenv("DOCQUEUE_JOBS_COLLECTION", "jobs"),
            scheduler_tick_seconds=_env_float("DOCQUEUE_SCHEDULER_TICK_SECONDS", 60.0),
            scheduler_timezone=scheduler_timezone,
            scheduler_enabled=_env_bool("DOCQUEUE_SCHEDULER_ENABLED", True),
            db_dsn=os.getenv("DOCQUEUE_DB_DSN") or None,
            auth_token=os.getenv("DOCQUEUE_AUTH_TOKEN") or None,
            app_base_url=os.getenv("DOCQUEUE_APP_BASE_URL", "http://localhost:3000"),
            scheduled_task_secret=os.getenv("DOCQUEUE_SCHEDULED_TASK_SECRET") or None,
            email_from=os.getenv("DOCQUEUE_EMAIL_FROM", "notifications@example.com"),
            aws_region=os.getenv("DOCQUEUE_AWS_REGION") or None,
        )

    def get_retry_delay(self, attempts: int) -> float:
        """Backoff in seconds after the given (1-based) failed attempt count."""
        index = min(max(attempts - 1, 0), len(self.retry_delays) - 1)
        return self.retry_delays[index]

    def get_scheduler_tz(self) -> tzinfo:
        """Time zone cron expressions are evaluated in. Defaults to local time."""
        if self.scheduler_timezone:
            zone = tz.gettz(self.scheduler_timezone)
            if zone is None:
                raise ValueError(f"Unknown time zone: {self.scheduler_timezone}")
            return zone
        return tz.tzlocal()
