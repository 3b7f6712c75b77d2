import logging

from sqlmodel import Session

from app.database import engine
from app.logging_config import configure_logging
from app.services.idempotency_ledger import purge_processed_events
from app.services.subscription_service import cleanup_abandoned_pending_subscriptions

logger = logging.getLogger(__name__)

LEDGER_RETENTION_DAYS = 90


def run_cleanup() -> dict:
    with Session(engine) as session:
        expired = cleanup_abandoned_pending_subscriptions(session)
        purged = purge_processed_events(session, older_than_days=LEDGER_RETENTION_DAYS)

    logger.info(f"Cleanup done: {expired} pending subscriptions expired, {purged} ledger rows purged")
    return {"expired_subscriptions": expired, "purged_events": purged}


if __name__ == "__main__":
    configure_logging()
    run_cleanup()
