import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from app.database import create_db_and_tables
from app.config import settings
from app.dependencies.services import build_lock_store
from app.errors import CommerceError
from app.logging_config import configure_logging
from app.routes import (
    admin,
    certificates,
    checkout,
    health,
    progress,
    subscriptions,
    webhooks,
)

from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Run DB creation ONLY in local
    if settings.ENV == "local":
        create_db_and_tables()
    logger.info(f"Starting {settings.STORE_NAME} commerce API ({settings.ENV})")
    yield

app = FastAPI(title="LearnHub Commerce API", lifespan=lifespan)

# one lock store per process; coalesces concurrent certificate requests
app.state.certificate_locks = build_lock_store()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        settings.APP_URL,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CommerceError)
def commerce_error_handler(request: Request, exc: CommerceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(checkout.router, tags=["Checkout"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(certificates.router, prefix="/certificates", tags=["Certificates"])
app.include_router(subscriptions.router, prefix="/subscriptions", tags=["Subscriptions"])
app.include_router(progress.router, prefix="/lessons", tags=["Progress"])
app.include_router(admin.router, prefix="/admin", tags=["Admin Endpoints"])


@app.get("/")
def root():
    return {
        "checkout": ["/checkout/cart", "/checkout/learning-paths/{path_id}", "/payments/paypal/capture"],
        "webhooks": ["/webhooks/paypal"],
        "certificates": [
            "/certificates", "/certificates/check", "/certificates/generate",
            "/certificates/sync", "/certificates/{certificate_id}/verify"
        ],
        "subscriptions": ["/subscriptions/current", "/subscriptions/{subscription_id}/cancel"],
        "progress": ["/lessons/{lesson_id}/complete"],
        "admin": [
            "/admin/subscriptions/grant", "/admin/subscriptions/cleanup",
            "/admin/webhooks/purge", "/admin/notifications"
        ],
    }
