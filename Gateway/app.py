import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from Gateway.errors import GatewayError, error_payload
from Gateway.services.ai_backend_client import close_ai_backend_client
from Gateway.subapps.chat_routes import router as chat_router
from Gateway.subapps.document_routes import router as documents_router
from Gateway.subapps.share_routes import router as share_router
from Gateway.subapps.translation_routes import router as translation_router


logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


_configure_logging()

_STATUS_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "RATE_LIMITED",
}


async def _gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request.failed: %s %s status=%d code=%s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc.message, exc.code), headers=exc.headers)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _STATUS_CODES.get(exc.status_code, "INTERNAL_ERROR" if exc.status_code >= 500 else "HTTP_ERROR")
    return JSONResponse(status_code=exc.status_code, content=error_payload(str(exc.detail), code), headers=getattr(exc, "headers", None))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_payload("Validation failed", "VALIDATION_ERROR", errors=jsonable_encoder(exc.errors())),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_payload("Internal server error", "INTERNAL_ERROR"))


# Releases the pooled HTTP connections to the AI backend on shutdown
@asynccontextmanager
async def _lifespan(application: FastAPI):
    yield
    close_ai_backend_client()


def create_app() -> FastAPI:
    application = FastAPI(title="Gateway", lifespan=_lifespan)
    application.add_exception_handler(GatewayError, _gateway_error_handler)
    application.add_exception_handler(StarletteHTTPException, _http_error_handler)
    application.add_exception_handler(RequestValidationError, _validation_error_handler)
    application.add_exception_handler(Exception, _unhandled_error_handler)
    application.include_router(chat_router)
    application.include_router(share_router)
    application.include_router(translation_router)
    application.include_router(documents_router)
    return application


app = create_app()
