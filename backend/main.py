"""
Order Desk API

Routers:
    /health    liveness plus a database ping
    /orders    create, read, partial update, pay and deliver
    /upload    product and avatar images pinned to IPFS

Every error leaves as {"success": false, "error": {code, message, details}}.
Domain errors carry their own status; the code is the class name without
"Error", lowercased (AllocationError → "allocation").
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from database import dispose_db, init_db
from domain.errors import DomainError
from routes import health, orders, uploads

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # default SQLite file lives under ./data
    os.makedirs("data", exist_ok=True)
    settings.validate_production_settings()
    await init_db()
    logger.info(f"Order Desk started ({settings.environment})")

    yield

    await dispose_db()


app = FastAPI(
    title="Order Desk API",
    description="Orders with region-prefixed sequential identifiers and payment/delivery consistency",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(orders.router)
app.include_router(uploads.router)


# ── Error envelope ──────────────────────────────────────────────────

def error_response(
    status_code: int,
    code: str,
    message: str,
    details=None,
    headers: dict | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "success": False,
            "error": {"code": code, "message": message, "details": details},
        },
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    code = exc.__class__.__name__.replace("Error", "").lower()
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, code, exc.message, exc.details, exc.headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    if isinstance(detail, str):
        return error_response(exc.status_code, "http_error", detail, headers=exc.headers)
    return error_response(exc.status_code, "http_error", "Request failed", detail, exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # traceback stays in the log, never in the response
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(500, "internal_server_error", "Internal server error")


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
