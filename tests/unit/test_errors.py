"""Unit tests for errors module."""


from docqueue.errors import (
    CronNoMatchError,
    CronParseError,
    DocQueueError,
    DocumentNotFoundError,
    InvalidJobStateError,
    JobNotFoundError,
    JobTimeoutError,
    RemoteHttpError,
    TaskNotFoundError,
)


def test_docqueue_error_base_class():
    """Test base exception class."""
    error = DocQueueError("Test error")
    assert str(error) == "Test error"
    assert isinstance(error, Exception)


def test_job_not_found_error():
    """Test JobNotFoundError."""
    error = JobNotFoundError("abc123")
    assert error.job_id == "abc123"
    assert str(error) == "Job abc123 not found"


def test_invalid_job_state_error():
    """Test InvalidJobStateError."""
    error = InvalidJobStateError("abc123", "pending", "Only failed jobs can be retried")
    assert error.status == "pending"
    assert str(error) == "Only failed jobs can be retried"
    assert str(InvalidJobStateError("abc123", "pending")) == "Job abc123 is pending"


def test_job_timeout_error():
    """Test JobTimeoutError default message."""
    assert str(JobTimeoutError()) == "Job timeout"


def test_cron_errors():
    """Test cron error messages."""
    error = CronParseError("*/5 * * * *", "step syntax is not supported")
    assert error.expression == "*/5 * * * *"
    assert "step syntax is not supported" in str(error)
    assert "0 0 30 2 *" in str(CronNoMatchError("0 0 30 2 *"))


def test_remote_http_error():
    """Test RemoteHttpError."""
    error = RemoteHttpError(500, "Internal Server Error", response_body="oops")
    assert error.status_code == 500
    assert error.response_body == "oops"
    assert str(error) == "HTTP 500: Internal Server Error"


def test_error_inheritance():
    """Test that all custom errors inherit from DocQueueError."""
    for error_class in (
        CronNoMatchError,
        CronParseError,
        DocumentNotFoundError,
        InvalidJobStateError,
        JobNotFoundError,
        JobTimeoutError,
        RemoteHttpError,
        TaskNotFoundError,
    ):
        assert issubclass(error_class, DocQueueError)
