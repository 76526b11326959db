import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookkeeping.core.config import settings
from bookkeeping.core.errors import MESSAGES, ErrorCode, ServiceError
from bookkeeping.core.logs import configure_logging
from bookkeeping.db.pool import apply_schema, close_db_pool, open_db_pool
from bookkeeping.routers.bills import router as bills_router
from bookkeeping.routers.transactions import router as transactions_router

configure_logging(settings.log_level)
logger = logging.getLogger("bookkeeping.main")


@asynccontextmanager
async def lifespan(_: FastAPI):
    open_db_pool()
    if settings.apply_schema:
        apply_schema()
    try:
        yield
    finally:
        close_db_pool()


app = FastAPI(title="bookkeeping", lifespan=lifespan)

app.include_router(bills_router)
app.include_router(transactions_router)


@app.get("/ping")
def ping():
    return {"ok": True}


def error_response(status_code: int, code: ErrorCode, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": code.value})


@app.exception_handler(ServiceError)
def service_error_handler(req: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed with %s: %s", req.method, req.url.path, exc.code.value, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
def request_validation_handler(_, exc: RequestValidationError):
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        return error_response(400, ErrorCode.RE001, MESSAGES[ErrorCode.RE001])
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = first.get("msg") or MESSAGES[ErrorCode.UM001]
    message = f"{MESSAGES[ErrorCode.UM001]}: {location}: {detail}" if location else f"{MESSAGES[ErrorCode.UM001]}: {detail}"
    return error_response(400, ErrorCode.UM001, message)


@app.exception_handler(StarletteHTTPException)
def http_exc_handler(_, exc: StarletteHTTPException):
    return error_response(exc.status_code, ErrorCode.SE001, str(exc.detail or MESSAGES[ErrorCode.SE001]))
