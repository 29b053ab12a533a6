"""
Error types raised by the funnel pipeline and the read API.

Each error carries a machine-readable ``code`` and a ``details`` dict. The
orchestrator maps the branches to exit codes (DataError/APIError and snapshot
failures: 1, ConfigError: 2, HistoryWriteError: 3) and the API maps
DataFetchError to 502.

Hierarchy:
    DashboardError
    ├── APIError
    │   ├── APITimeoutError
    │   ├── APIRateLimitError
    │   └── APIAuthError
    ├── DataError
    │   ├── ConfigError
    │   ├── SchemaValidationError
    │   └── DataFetchError
    ├── PipelineError
    │   ├── PipelineStepError
    │   ├── SnapshotWriteError
    │   └── HistoryWriteError
    └── InsufficientHistoryError
"""


class DashboardError(Exception):
    """Root of every error the pipeline or the API raises on purpose."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- API Errors ---

class APIError(DashboardError):
    """The Brevo contacts API answered with an error or did not answer."""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class APITimeoutError(APIError):
    """A Brevo page request exceeded the configured timeout."""

    def __init__(self, url: str, timeout: float):
        super().__init__(
            f"Request timed out after {timeout}s: {url}",
            code="API_TIMEOUT", url=url, timeout=timeout,
        )


class APIRateLimitError(APIError):
    """Brevo returned 429. Runs are not retried, so this aborts the fetch."""

    def __init__(self, url: str, retry_after: int = None):
        msg = f"Rate limit exceeded: {url}"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(
            msg, code="API_RATE_LIMIT", status_code=429, url=url,
            retry_after=retry_after,
        )


class APIAuthError(APIError):
    """Brevo rejected the API key (401 or 403)."""

    def __init__(self, url: str, status_code: int = 401):
        super().__init__(
            f"Authentication failed ({status_code}): {url}",
            code="API_AUTH_FAILED", url=url, status_code=status_code,
        )


# --- Data Errors ---

class DataError(DashboardError):
    """Settings, contact data or a published artifact is missing or malformed."""


class ConfigError(DataError):
    """An environment setting is missing or cannot be parsed. Exit code 2."""

    def __init__(self, message: str, setting: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"setting": setting},
        )


class SchemaValidationError(DataError):
    """A Brevo page or a published artifact does not have the expected shape."""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message, code="SCHEMA_INVALID", details={"field": field},
        )


class DataFetchError(DataError):
    """Contacts could not be fetched, or an artifact could not be read back."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )


# --- Pipeline Errors ---

class PipelineError(DashboardError):
    """A pipeline run failed after the fetch, while computing or publishing."""


class PipelineStepError(PipelineError):
    """A step raised something that is not a DashboardError. Wraps the cause."""

    def __init__(self, step_name: str, cause: Exception = None):
        msg = f"Pipeline step '{step_name}' failed"
        if cause:
            msg += f": {cause}"
        super().__init__(
            msg, code="PIPELINE_STEP_FAILED", details={"step": step_name},
        )
        self.step_name = step_name
        self.cause = cause


class SnapshotWriteError(PipelineError):
    """datasets.json could not be written, so the run publishes nothing. Exit code 1."""

    def __init__(self, path: str, cause: Exception = None):
        msg = f"Failed to write snapshot to {path}"
        if cause:
            msg += f": {cause}"
        super().__init__(msg, code="SNAPSHOT_WRITE_FAILED", details={"path": path})


class HistoryWriteError(PipelineError):
    """History could not be updated or saved.

    Raised after the snapshot is already published. Exit code 3.
    """

    def __init__(self, path: str, cause: Exception = None):
        msg = f"Failed to update history at {path}"
        if cause:
            msg += f": {cause}"
        super().__init__(msg, code="HISTORY_WRITE_FAILED", details={"path": path})


# --- History state ---

class InsufficientHistoryError(DashboardError):
    """Fewer weekly snapshots than a delta needs. An expected state, not a fault."""

    def __init__(self, available: int, required: int = 2):
        super().__init__(
            f"Need at least {required} weekly snapshots, have {available}",
            code="INSUFFICIENT_HISTORY",
            details={"available": available, "required": required},
        )
        self.available = available
        self.required = required
