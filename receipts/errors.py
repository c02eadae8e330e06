import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ReceiptError(HTTPException):
    """Base for domain errors.

    Carries the ``{code, message, details}`` payload in ``detail`` so the
    HTTP handler below renders it unchanged, while services and tests can
    still inspect ``status_code``.
    """

    status_code = 400
    code = "error"

    def __init__(self, message: str, details=None, code: str | None = None):
        self.message = message
        self.details = details
        if code:
            self.code = code
        super().__init__(
            status_code=type(self).status_code,
            detail={"code": self.code, "message": message, "details": details},
        )


class ValidationError(ReceiptError):
    status_code = 400
    code = "validation_error"


class NotFoundError(ReceiptError):
    status_code = 404
    code = "not_found"


class ConflictError(ReceiptError):
    status_code = 409
    code = "conflict"


class QuotaExceeded(ReceiptError):
    status_code = 402
    code = "quota_exceeded"


class SeatLimitExceeded(ReceiptError):
    status_code = 402
    code = "seat_limit_exceeded"


class DocumentClosedError(ReceiptError):
    status_code = 410
    code = "document_closed"


class PolicyViolation(ReceiptError):
    status_code = 403
    code = "policy_violation"


def _error_payload(code: str, message: str, details):
    return {"code": code, "message": message, "details": details}


def register_error_handlers(app) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        detail = exc.detail
        code = f"http_{exc.status_code}"
        message = "Request failed"
        details = None
        if isinstance(detail, dict):
            code = detail.get("code", code)
            message = detail.get("message", message)
            details = detail.get("details")
        elif isinstance(detail, str):
            message = detail
        else:
            details = detail
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(code, message, details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        # exc.errors() ctx may contain raw Exception objects (not JSON-serialisable).
        errors = [
            {k: str(v) if k == "ctx" else v for k, v in err.items()}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=_error_payload("validation_error", "Validation error", errors),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_payload("internal_error", "Internal server error", None),
        )
