"""Error taxonomy and the top-level exception handlers.

Domain code raises ``MissionHubError`` subclasses; only the handlers
registered here turn them into HTTP responses.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import Settings
from .logging_config import get_logger

logger = get_logger("errors")


class MissionHubError(Exception):
    """Base class for errors with a public message and an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(MissionHubError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotAuthenticatedError(MissionHubError):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotAuthorizedError(MissionHubError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(MissionHubError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateError(MissionHubError):
    """Operation not valid for the mission's current lifecycle state."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(MissionHubError):
    status_code = status.HTTP_409_CONFLICT


class ExternalCapabilityError(MissionHubError):
    """A payment or push call failed or timed out."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, capability: str, message: str, *, detail: str | None = None):
        super().__init__(message)
        self.capability = capability
        self.detail = detail


class WebhookVerificationError(ValidationError):
    pass


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    """Install the single top-level mapping from exceptions to responses."""

    @app.exception_handler(MissionHubError)
    async def _mission_hub_error(request: Request, exc: MissionHubError):
        body = {"error": exc.message}
        if isinstance(exc, ExternalCapabilityError):
            logger.error(
                f"{request.method} {request.url.path} | {exc.capability} failed | {exc.detail}"
            )
            if settings.is_development and exc.detail:
                body["error"] = f"{exc.message}: {exc.detail}"
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Validation failed", "details": details},
        )

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        message = str(exc) if settings.is_development else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": message},
        )
