"""
Error types and the handlers that render them.

Search and detail endpoints answer failures with the same envelope as their
success payloads (``{"error": ..., "results": []}`` and
``{"error": ..., "detail": null}``), so clients always find the key they expect.
"""
import logging
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exception_handlers import request_validation_exception_handler

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """The PNCP API answered with a non-success status or could not be reached"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class BillingError(Exception):
    """The billing provider rejected a request or could not be reached"""


class ProcurementAPIError(Exception):
    """Base for faults rendered in an endpoint-specific envelope"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    envelope = {}

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_content(self) -> dict:
        return {"error": self.message, **self.envelope}


class SearchError(ProcurementAPIError):
    envelope = {"results": []}


class DetailError(ProcurementAPIError):
    envelope = {"detail": None}


# Routes whose validation failures use the envelope instead of FastAPI's {"detail": [...]}
ENVELOPE_ROUTES = {
    "/api/search": SearchError,
    "/api/procurements/detail": DetailError,
}


async def procurement_error_handler(request: Request, exc: ProcurementAPIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


def _describe_validation_error(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg", "invalid input"))
    return "Invalid request: " + "; ".join(messages)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error_cls = ENVELOPE_ROUTES.get(request.url.path)
    if error_cls is None:
        return await request_validation_exception_handler(request, exc)

    message = _describe_validation_error(exc)
    logger.warning(f"Rejected malformed request to {request.url.path}: {message}")
    error = error_cls(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_content()))
