"""Exception types for the docqueue library."""


class DocQueueError(Exception):
    """Base exception for all docqueue errors."""

    pass


class JobNotFoundError(DocQueueError):
    """Raised when a job is not found."""

    def __init__(self, job_id: str, message: str = None):
        self.job_id = job_id
        if message is None:
            message = f"Job {job_id} not found"
        super().__init__(message)


class InvalidJobStateError(DocQueueError):
    """Raised when an operation is not allowed in the job's current status."""

    def __init__(self, job_id: str, status: str, message: str = None):
        self.job_id = job_id
        self.status = status
        if message is None:
            message = f"Job {job_id} is {status}"
        super().__init__(message)


class DocumentNotFoundError(DocQueueError):
    """Raised when a document store update targets a missing document."""

    def __init__(self, collection: str, document_id: str):
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"Document {collection}/{document_id} not found")


class JobTimeoutError(DocQueueError):
    """Raised when a processor does not settle within its timeout."""

    def __init__(self, message: str = "Job timeout"):
        super().__init__(message)


class CronParseError(DocQueueError):
    """Raised when a cron expression cannot be parsed."""

    def __init__(self, expression: str, message: str):
        self.expression = expression
        super().__init__(f"Invalid cron expression {expression!r}: {message}")


class CronNoMatchError(DocQueueError):
    """Raised when no run time can be found for a cron expression."""

    def __init__(self, expression: str, message: str = None):
        self.expression = expression
        if message is None:
            message = f"Cron expression {expression!r} never matches within one year"
        super().__init__(message)


class TaskNotFoundError(DocQueueError):
    """Raised when a scheduled task is not found."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Scheduled task {task_id} not found")


class RemoteHttpError(DocQueueError):
    """Raised when an HTTP request to the host application fails."""

    def __init__(self, status_code: int, message: str, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")
