"""Queue health assessment from per-status job counts."""

from typing import Any

from docqueue.models import QueueStats

FAILED_THRESHOLD = 10
PROCESSING_THRESHOLD = 20
PENDING_THRESHOLD = 100
RETRYING_THRESHOLD = 5


def assess_queue_health(stats: QueueStats) -> dict[str, Any]:
    """
    Grade the queue from its status counts.

    Each threshold exceeded adds one issue and one recommendation. No issue
    is ``healthy``, one or two is ``warning``, three or more is ``critical``.

    Returns:
        dict with ``status``, ``issues`` and ``recommendations``
    """
    issues = []
    recommendations = []

    if stats.failed > FAILED_THRESHOLD:
        issues.append(f"High number of failed jobs: {stats.failed}")
        recommendations.append("Review failed jobs and check error logs")

    if stats.processing > PROCESSING_THRESHOLD:
        issues.append(f"High number of processing jobs: {stats.processing}")
        recommendations.append("Check for stuck jobs or slow processors")

    if stats.pending > PENDING_THRESHOLD:
        issues.append(f"Large pending queue: {stats.pending} jobs")
        recommendations.append("Consider scaling up job processors")

    if stats.retrying > RETRYING_THRESHOLD:
        issues.append(f"Jobs retrying: {stats.retrying}")
        recommendations.append("Review retry logic and error handling")

    if len(issues) > 2:
        status = "critical"
    elif issues:
        status = "warning"
    else:
        status = "healthy"

    return {"status": status, "issues": issues, "recommendations": recommendations}
