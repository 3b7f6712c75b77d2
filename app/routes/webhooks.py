import logging

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from app.database import get_session
from app.dependencies.services import get_webhook_ingestor
from app.errors import SignatureVerificationFailed
from app.services.webhook_service import WebhookIngestor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/paypal")
def paypal_webhook(
    request: Request,
    event: dict = Body(...),
    session: Session = Depends(get_session),
    ingestor: WebhookIngestor = Depends(get_webhook_ingestor),
):
    try:
        return ingestor.ingest(session, event, request.headers)
    except SignatureVerificationFailed as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    except Exception:
        # 500 makes PayPal redeliver; the ledger entry was already released
        logger.exception("PayPal webhook processing failed")
        return JSONResponse(
            status_code=500,
            content={"received": False, "error": "Processing failed"},
        )
