"""
Exception handlers for the Fulfillment Service.

Every failure leaves the service in one envelope::

    {"error": {"type", "message", "correlation_id", "timestamp",
               "path", "method", "details"?}}
"""

import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ...core.exceptions import FulfillmentError
from ...utils.logging import setup_fulfillment_logging

logger = setup_fulfillment_logging("fulfillment_service.error_handler")


def _request_context(request: Request) -> Dict[str, Any]:
    return {
        "correlation_id": getattr(request.state, "correlation_id", "unknown"),
        "path": request.url.path,
        "method": request.method,
    }


def _validation_details(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in errors
    ]


class FulfillmentErrorHandler:
    """Registers the service's exception handlers on an application.

    Domain errors (``FulfillmentError`` subclasses) bring their own status
    code, type and details. Anything unexpected becomes a 500 whose message
    does not leak internals.
    """

    @staticmethod
    def setup_error_handlers(app: FastAPI) -> None:
        @app.exception_handler(FulfillmentError)
        async def fulfillment_error_handler(
            request: Request, exc: FulfillmentError
        ) -> JSONResponse:
            if exc.status_code >= 500:
                logger.error(
                    f"Fulfillment error: {exc.message}",
                    extra={
                        **_request_context(request),
                        "error_type": exc.error_type,
                        "details": exc.details,
                    },
                )
            return FulfillmentErrorHandler._create_error_response(
                request=request,
                status_code=exc.status_code,
                error_type=exc.error_type,
                message=exc.message,
                details=exc.details,
            )

        @app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(
            request: Request, exc: StarletteHTTPException
        ) -> JSONResponse:
            """400s raised by the services and routing errors from Starlette"""
            return FulfillmentErrorHandler._create_error_response(
                request=request,
                status_code=exc.status_code,
                error_type="http_error",
                message=str(exc.detail),
            )

        @app.exception_handler(RequestValidationError)
        async def validation_exception_handler(
            request: Request, exc: RequestValidationError
        ) -> JSONResponse:
            return FulfillmentErrorHandler._create_error_response(
                request=request,
                status_code=422,
                error_type="validation_error",
                message="Request validation failed",
                details={"validation_errors": _validation_details(exc.errors())},
            )

        @app.exception_handler(ValidationError)
        async def payload_validation_handler(
            request: Request, exc: ValidationError
        ) -> JSONResponse:
            """Payloads validated inside a route, e.g. a return request body"""
            return FulfillmentErrorHandler._create_error_response(
                request=request,
                status_code=400,
                error_type="data_validation_error",
                message=f"Invalid {exc.title} payload",
                details={"validation_errors": _validation_details(exc.errors())},
            )

        @app.exception_handler(IntegrityError)
        async def integrity_error_handler(
            request: Request, exc: IntegrityError
        ) -> JSONResponse:
            logger.warning(
                "Store rejected a write",
                extra={**_request_context(request), "reason": str(exc.orig)},
            )
            return FulfillmentErrorHandler._create_error_response(
                request=request,
                status_code=409,
                error_type="conflict",
                message="The record conflicts with existing data",
            )

        @app.exception_handler(ValueError)
        async def value_error_handler(
            request: Request, exc: ValueError
        ) -> JSONResponse:
            return FulfillmentErrorHandler._create_error_response(
                request=request,
                status_code=400,
                error_type="value_error",
                message=str(exc),
            )

        @app.exception_handler(Exception)
        async def unhandled_exception_handler(
            request: Request, exc: Exception
        ) -> JSONResponse:
            logger.error(
                "Unhandled exception occurred",
                extra={
                    **_request_context(request),
                    "exception_type": type(exc).__name__,
                    "exception_message": str(exc),
                    "traceback": traceback.format_exc(),
                    "event_type": "unhandled_exception",
                },
                exc_info=True,
            )
            return FulfillmentErrorHandler._create_error_response(
                request=request,
                status_code=500,
                error_type="internal_server_error",
                message="An internal server error occurred",
                details={"exception_type": type(exc).__name__},
            )

    @staticmethod
    def _create_error_response(
        request: Request,
        status_code: int,
        error_type: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        context = _request_context(request)
        error: Dict[str, Any] = {
            "type": error_type,
            "message": message,
            "correlation_id": context["correlation_id"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "path": context["path"],
            "method": context["method"],
        }
        if details:
            error["details"] = details

        # 5xx responses were logged by their handler
        if status_code < 500:
            logger.warning(
                f"Client error: {error_type}",
                extra={
                    **context,
                    "status_code": status_code,
                    "error_type": error_type,
                    "event_type": "client_error",
                },
            )

        return JSONResponse(status_code=status_code, content={"error": error})


def setup_fulfillment_error_handling(app: FastAPI) -> None:
    FulfillmentErrorHandler.setup_error_handlers(app)
    logger.info(
        "Fulfillment Service error handling configured",
        extra={"event_type": "error_handler_setup"},
    )
