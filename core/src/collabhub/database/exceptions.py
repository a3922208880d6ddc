from __future__ import annotations

from typing import Any, Dict, List, Optional


class RepositoryError(RuntimeError):
    """Raised when repository operations fail.

    Wraps lower-level exceptions to provide a stable, domain-friendly API.
    """

    pass


class StoreUnavailable(RepositoryError):
    """The backing table could not serve the request."""


class Throttled(StoreUnavailable):
    """The backend rejected the request for exceeding its throughput."""


class PreconditionFailed(RepositoryError):
    """A conditional write did not match the item's current state."""


class InvalidCursor(RepositoryError):
    """A pagination token is malformed, tampered with or used out of scope."""


class BatchPartialFailure(RepositoryError):
    """A batch operation stopped partway through.

    Windows applied before the failure stay applied; nothing is rolled back.
    """

    def __init__(
        self,
        message: str,
        *,
        completed_windows: int,
        total_windows: int,
        unprocessed: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.completed_windows = completed_windows
        self.total_windows = total_windows
        self.unprocessed = unprocessed or []


class ServiceError(ValueError):
    """Base class for business-rule failures raised by service classes."""


class NotFoundError(ServiceError):
    pass


class ConflictError(ServiceError):
    pass


class PermissionDenied(ServiceError):
    pass
