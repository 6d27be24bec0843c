from fastapi import HTTPException, status

from gitsync.core.result import Err, ErrorKind


class NotFoundError(HTTPException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class SyncFailedError(HTTPException):
    """Raised at the API edge when a sync operation returns an Err result."""

    STATUS_BY_KIND = {
        ErrorKind.MISSING_CONFIG: status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
        ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
        ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
        ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    }

    def __init__(self, error: Err, retry_after: int | None = None):
        headers = {"Retry-After": str(retry_after)} if retry_after else None
        super().__init__(
            status_code=self.STATUS_BY_KIND.get(error.kind, status.HTTP_502_BAD_GATEWAY),
            detail={"kind": error.kind.value, "message": error.message},
            headers=headers,
        )
        self.kind = error.kind
