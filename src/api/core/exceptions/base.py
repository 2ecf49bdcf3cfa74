"""Global exception handlers for the FastAPI application."""

import traceback

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..messages import MessageCode, get_default_message
from src.core.errors import DomainError, ErrorCategory
from src.utils.logger import get_logger

logger = get_logger(__name__)


CATEGORY_STATUS = {
    ErrorCategory.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCategory.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCategory.INSUFFICIENT_CREDIT: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCategory.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCategory.PROVIDER_FAILURE: status.HTTP_502_BAD_GATEWAY,
    ErrorCategory.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class CreditGateException(Exception):
    """API-layer exception with unified message codes."""

    def __init__(
        self,
        message_code: MessageCode,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict | None = None,
        headers: dict | None = None,
    ):
        self.message_code = message_code
        self.status_code = status_code
        self.message: str = get_default_message(message_code)
        self.details = details or {}
        self.headers = headers or {}
        super().__init__(self.message)

    def to_response_dict(self) -> dict:
        """Convert exception to API response format."""
        return {
            "message_code": self.message_code,
            "message": self.message,
            "details": self.details,
        }


def domain_error_response(exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=CATEGORY_STATUS.get(
            exc.category, status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
        content={
            "message_code": exc.message_code,
            "message": exc.message,
            "details": {"category": exc.category.value, **exc.details},
        },
    )


def _serializable_errors(errors) -> list[dict]:
    serializable_errors = []
    for error in errors:
        error_dict = dict(error)
        if "input" in error_dict and hasattr(error_dict["input"], "isoformat"):
            error_dict["input"] = error_dict["input"].isoformat()
        # ctx may hold exception instances
        if "ctx" in error_dict:
            error_dict["ctx"] = {k: str(v) for k, v in error_dict["ctx"].items()}
        serializable_errors.append(error_dict)
    return serializable_errors


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""

    @app.exception_handler(CreditGateException)
    async def creditgate_exception_handler(
        request: Request, exc: CreditGateException
    ) -> JSONResponse:
        """Handle API-layer exceptions."""
        logger.warning(
            f"API exception: {exc.message_code.value}",
            path=request.url.path,
            method=request.method,
            details=exc.details,
        )

        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response_dict(),
            headers=exc.headers,
        )

    @app.exception_handler(DomainError)
    async def domain_exception_handler(
        request: Request, exc: DomainError
    ) -> JSONResponse:
        """Bind domain error categories to HTTP status codes."""
        log = (
            logger.error
            if exc.category
            in (ErrorCategory.INTERNAL, ErrorCategory.PROVIDER_FAILURE)
            else logger.info
        )
        log(
            f"Domain error: {exc.message_code.value}",
            path=request.url.path,
            method=request.method,
            category=exc.category.value,
        )
        return domain_error_response(exc)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        """Handle FastAPI HTTP exceptions."""
        logger.warning(
            f"HTTP exception {exc.status_code}: {exc.detail}",
            path=request.url.path,
            method=request.method,
        )

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "message_code": MessageCode.INTERNAL_SERVER_ERROR,
                "message": str(exc.detail),
                "details": {"description": "HTTP exception occurred"},
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle Starlette HTTP exceptions (404 routes, 405 methods)."""
        message_code = (
            MessageCode.NOT_FOUND
            if exc.status_code == status.HTTP_404_NOT_FOUND
            else MessageCode.BAD_REQUEST
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "message_code": message_code,
                "message": str(exc.detail),
                "details": {},
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors."""
        logger.warning(
            "Validation error occurred",
            path=request.url.path,
            method=request.method,
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "message_code": MessageCode.INVALID_INPUT,
                "message": get_default_message(MessageCode.INVALID_INPUT),
                "details": {
                    "description": "Request validation failed",
                    "validation_errors": _serializable_errors(exc.errors()),
                },
            },
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_exception_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors raised inside handlers."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "message_code": MessageCode.VALIDATION_ERROR,
                "message": get_default_message(MessageCode.VALIDATION_ERROR),
                "details": {"validation_errors": _serializable_errors(exc.errors())},
            },
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(
        request: Request, exc: SQLAlchemyError
    ) -> JSONResponse:
        """Handle SQLAlchemy database errors."""
        logger.error(
            f"Database error: {exc}",
            path=request.url.path,
            method=request.method,
            exception_type=type(exc).__name__,
        )

        if isinstance(exc, IntegrityError):
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content={
                    "message_code": MessageCode.CONFLICT,
                    "message": "Data integrity constraint violated",
                    "details": {"database_error": "Constraint violation"},
                },
            )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message_code": MessageCode.INTERNAL_ERROR,
                "message": "Database error occurred",
                "details": {"database_error": "Internal database error"},
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle all other unhandled exceptions."""
        logger.error(
            f"Unhandled exception: {exc}",
            path=request.url.path,
            method=request.method,
            exception_type=type(exc).__name__,
            traceback=traceback.format_exc(),
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message_code": MessageCode.INTERNAL_ERROR,
                "message": "Internal server error",
                "details": {"error_type": type(exc).__name__},
            },
        )
