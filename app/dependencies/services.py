from fastapi import Depends, Request

from app.config import settings
from app.notifications.service import NotificationService, get_notifier
from app.services.certificate_service import CertificateIssuer
from app.services.paypal_client import get_payment_gateway
from app.services.webhook_service import WebhookIngestor
from app.utils.ttl_store import TTLStore


def build_lock_store() -> TTLStore:
    return TTLStore(default_ttl=settings.CERTIFICATE_LOCK_TTL_SECONDS)


def get_lock_store(request: Request) -> TTLStore:
    store = getattr(request.app.state, "certificate_locks", None)
    if store is None:
        store = request.app.state.certificate_locks = build_lock_store()
    return store


def get_certificate_issuer(
    lock_store: TTLStore = Depends(get_lock_store),
    notifier: NotificationService = Depends(get_notifier),
) -> CertificateIssuer:
    return CertificateIssuer(lock_store=lock_store, notifier=notifier)


def get_webhook_ingestor(
    gateway=Depends(get_payment_gateway),
    notifier: NotificationService = Depends(get_notifier),
) -> WebhookIngestor:
    return WebhookIngestor(gateway=gateway, notifier=notifier)
