from fastapi import APIRouter, Depends
from sqlmodel import Session, text
from datetime import datetime

from app.database import get_session
from app.dependencies.services import get_lock_store
from app.utils.ttl_store import TTLStore

router = APIRouter()

@router.get("/check")
def health_check(
    session: Session = Depends(get_session),
    lock_store: TTLStore = Depends(get_lock_store),
):
    db_status = "ok"

    try:
        # simple DB ping
        session.execute(text("SELECT 1"))
    except Exception:
        db_status = "failed"

    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "database": db_status,
        "certificate_locks": len(lock_store),
        "timestamp": datetime.utcnow().isoformat()
    }
