import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# .env from the project root, wherever uvicorn is started from
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from voucher_store.api.admin import router as admin_router
from voucher_store.api.catalog import router as catalog_router
from voucher_store.api.checkout import router as checkout_router
from voucher_store.api.invoice import router as invoice_router
from voucher_store.api.payment import router as payment_router
from voucher_store.core.config import is_gateway_configured, settings
from voucher_store.core.database import engine, init_db
from voucher_store.core.rate_limit import limiter
from voucher_store.errors import StoreError
from voucher_store.logging import setup_logging
from voucher_store.services.email_sender import is_mail_configured

setup_logging(level=logging.INFO)
log = logging.getLogger("vouchers")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    log.info(
        "Voucher store starting: environment=%s gateway_configured=%s mail_configured=%s",
        settings.environment,
        "yes" if is_gateway_configured() else "NO (set TAP_SECRET_KEY in .env)",
        "yes" if is_mail_configured() else "no",
    )
    yield


app = FastAPI(
    title="Voucher Store API",
    description="Exam voucher checkout, payment reconciliation, invoicing and inventory",
    lifespan=lifespan,
)
app.state.limiter = limiter


def _error_response(request: Request, status_code: int, en: str, ar: str, reason: str | None = None) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"error": {"en": en, "ar": ar}, "status_code": status_code}
    if reason:
        body["reason"] = reason
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(StoreError)
def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("Request failed: path=%s status=%s error=%s", request.url.path, exc.status_code, exc.en)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    response = _error_response(request, exc.status_code, exc.en, exc.ar, exc.reason)
    if headers:
        response.headers.update(headers)
    return response


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("Rate limit exceeded: path=%s detail=%s", request.url.path, exc.detail)
    return _error_response(
        request,
        429,
        "Too many requests, please wait a minute",
        "طلبات كثيرة جداً، يرجى الانتظار دقيقة",
    )


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.warning(
        "Request validation error (422): path=%s method=%s detail=%s",
        request.url.path,
        request.method,
        errs,
    )
    first = errs[0] if errs else {}
    loc = [str(p) for p in first.get("loc") or [] if p != "body"]
    field = loc[-1] if loc else None
    en = f"Invalid value for {field}" if field else "Invalid request"
    ar = f"قيمة غير صالحة للحقل {field}" if field else "طلب غير صالح"
    response = _error_response(request, 422, en, ar, field)
    return response


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_response(request, exc.status_code, detail, detail)


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc, exc_info=True)
    return _error_response(request, 500, StoreError.default_en, StoreError.default_ar)


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request.state.request_id
    log.info(
        "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(checkout_router)
app.include_router(payment_router)
app.include_router(invoice_router)
app.include_router(catalog_router)
app.include_router(admin_router)


@app.get("/health")
def health():
    database = "ok"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        log.warning("Health check database error: %s", e)
        database = "error"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "gateway_configured": is_gateway_configured(),
    }
