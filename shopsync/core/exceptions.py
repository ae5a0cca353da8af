"""Exception hierarchy for the sync engine.

Errors fall into three groups:
- Configuration errors: raised at startup, the process refuses to run
- Item errors: scoped to a single record, counted as a failed item
- Job errors: abort the current job, the queue marks it failed
"""


class ShopSyncError(Exception):
    """Base exception for shopsync."""
    pass


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(ShopSyncError):
    """Invalid or incomplete configuration.

    Carries every problem found so they can be reported together.
    """

    def __init__(self, message: str, problems: list[str] | None = None):
        self.problems = problems or []
        if self.problems:
            message = f"{message}: " + "; ".join(self.problems)
        super().__init__(message)


class DependencyCycleError(ConfigurationError):
    """The data object dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")


# =============================================================================
# Item and job execution
# =============================================================================


class ItemProcessingError(ShopSyncError):
    """A single record could not be synced."""

    def __init__(self, external_id: str, message: str):
        self.external_id = external_id
        super().__init__(message)


class MappingConflictError(ItemProcessingError):
    """A remote id is already mapped to a different external id."""

    def __init__(self, kind: str, external_id: str, remote_id: str, owner: str):
        self.kind = kind
        self.remote_id = remote_id
        self.owner = owner
        super().__init__(
            external_id,
            f"{kind}: remote id {remote_id} is already mapped to {owner!r}",
        )


class HandlerNotRegisteredError(ShopSyncError):
    """No handler is registered for a data object kind."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No handler registered for {kind}")


class JobExecutionError(ShopSyncError):
    """A job failed as a whole (snapshot read, delta computation, handler crash)."""

    def __init__(self, kind: str, job_id: str | None, message: str):
        self.kind = kind
        self.job_id = job_id
        super().__init__(message)


# =============================================================================
# External services
# =============================================================================


class SignatureVerificationError(ShopSyncError):
    """Webhook signature missing or invalid."""
    pass


class RemoteAPIError(ShopSyncError):
    """Error returned by the Shopify Admin API.

    Transport failures and 429/5xx responses are retryable; GraphQL
    errors and user errors are not.
    """

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = False):
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(f"Shopify API error: {message}")


class SourceAPIError(ShopSyncError):
    """Error returned by the Google Sheets API."""

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = False):
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(f"Google Sheets API error: {message}")
