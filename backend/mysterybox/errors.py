"""Global error handlers: every failure renders as {"detail": CODE, "message": text}."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("mysterybox.errors")

ERROR_MESSAGES = {
    "UNAUTHORIZED": "Authentication required",
    "FORBIDDEN": "Unauthorized - Admin access required",
    "INVALID_REQUEST": "Request body failed validation",
    "INVALID_FILTER": "Filter must be one of all, pending, opened, delivered",
    "INVALID_BOX_NUMBER": "Box number is outside the board",
    "BOX_ALREADY_OPENED": "That box has already been opened",
    "BOX_NUMBER_AND_PRIZE_REQUIRED": "Box number and prize name are required",
    "USER_EMAIL_OR_PAYMENT_REQUIRED": "Either user email or payment ID is required",
    "USER_EMAIL_REQUIRED": "User email is required",
    "USER_NOT_FOUND": "User not found",
    "USER_ALREADY_HAS_OPENED_PRIZE": "User already has an opened prize",
    "PAYMENT_NOT_FOUND": "Payment not found",
    "PAYMENT_ALREADY_OPENED": "This payment already has an opened prize",
    "CLAIM_NOT_FOUND": "Prize claim not found",
    "CLAIM_NOT_PENDING": "Prize claim is not pending admin opening",
    "CLAIM_NOT_OPENED": "Prize claim has not been opened",
    "PRIZE_CATALOG_EMPTY": "No prizes are configured",
    "INVALID_SIGNATURE": "Webhook signature verification failed",
    "INVALID_PAYLOAD": "Webhook payload could not be parsed",
    "INVALID_IDEMPOTENCY_KEY": "Idempotency key is too long",
    "IDEMPOTENCY_KEY_REUSE": "Idempotency key was already used with a different request",
    "IDEMPOTENCY_IN_PROGRESS": "A request with this idempotency key is still in progress",
    "PAYMENTS_NOT_CONFIGURED": "Payments are not configured",
    "CHECKOUT_FAILED": "Failed to create checkout session",
    "INTERNAL_ERROR": "Internal server error",
}


def error_body(code: str) -> dict:
    return {"detail": code, "message": ERROR_MESSAGES.get(code, code.replace("_", " ").capitalize())}


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = exc.detail if isinstance(exc.detail, str) else "ERROR"
        return JSONResponse(status_code=exc.status_code, content=error_body(code), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content={**error_body("INVALID_REQUEST"), "errors": errors})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception path=%s method=%s", request.url.path, request.method)
        return JSONResponse(status_code=500, content=error_body("INTERNAL_ERROR"))
