from fastapi import Request, status
from starlette.responses import JSONResponse


class RelayError(Exception):
    """Failure inside a relay, rendered as an ``{"error": ...}`` envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class MissingParameterError(RelayError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidParameterError(RelayError):
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(RelayError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(RelayError):
    status_code = status.HTTP_404_NOT_FOUND


class PayloadTooLargeError(RelayError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class StorageWriteError(RelayError):
    pass


class DatabaseWriteError(RelayError):
    pass


class UpstreamError(RelayError):
    pass


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
