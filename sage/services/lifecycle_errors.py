"""Exceptions raised by the conversation-lifecycle pipeline and its dispatcher."""


class LifecycleError(Exception):
    """Base class for lifecycle pipeline errors."""

    retryable: bool = True

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class LifecycleConfigurationError(LifecycleError):
    """A required setting (e.g. the LLM API key) is missing or rejected.

    Retrying cannot succeed, so runs stop at the first occurrence.
    """

    retryable = False


class SummarizationError(LifecycleError):
    """The summarization service failed or returned nothing usable."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LifecycleStepError(LifecycleError):
    """A named pipeline step failed.

    Wraps the underlying exception so the dispatcher can log and record
    which step failed and decide whether the run may be retried.
    """

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"Step '{step}' failed: {type(cause).__name__}: {cause}")
        self.step = step
        self.cause = cause
        self.retryable = getattr(cause, "retryable", True)


class DispatchUnavailableError(LifecycleError):
    """The dispatcher could not accept a new run."""
