"""Context managers for structured logging."""

from forcelink.logging.context import get_log_context, set_log_context


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(job_id=job.id, operation="bulk.close"):
            # All logs in this block carry job_id and operation
            await controller.close(job.id)
    """

    def __init__(
        self,
        request_id: str | None = None,
        job_id: str | None = None,
        operation: str | None = None,
    ):
        self.new_context = {
            "request_id": request_id,
            "job_id": job_id,
            "operation": operation,
        }
        self.old_context: dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        set_log_context(**self.new_context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # Restore old context
        set_log_context(**self.old_context)
        return False
