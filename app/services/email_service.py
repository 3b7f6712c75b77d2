# app/services/email_service.py
import logging
import re
from typing import List, Union

import requests

from app.config import settings

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"
BREVO_TIMEOUT = 10

EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")

Recipients = Union[str, List[str]]


def is_valid_email(email) -> bool:
    if isinstance(email, list):
        return bool(email) and all(is_valid_email(e) for e in email)
    return bool(email) and EMAIL_RE.fullmatch(email.strip()) is not None


def _recipients(to: Recipients) -> List[str]:
    candidates = to if isinstance(to, list) else [to]
    return [e.strip() for e in candidates if e and is_valid_email(e)]


def build_brevo_payload(recipients: List[str], subject: str, html: str) -> dict:
    return {
        "sender": {"email": settings.MAIL_FROM, "name": settings.STORE_NAME},
        "to": [{"email": email} for email in recipients],
        "subject": subject,
        "htmlContent": html,
    }


def send_email(to: Recipients, subject: str, html: str) -> bool:
    """
    Send a transactional email through Brevo.

    Never raises for delivery problems: invalid addresses, a missing API key,
    transport errors and 4xx/5xx answers are logged and reported as False.
    """
    recipients = _recipients(to)
    if not recipients:
        logger.warning(f"No valid emails found: {to}")
        return False

    if not settings.BREVO_API_KEY:
        logger.info(f"BREVO_API_KEY not set, skipping email '{subject}' to {recipients}")
        return False

    try:
        response = requests.post(
            BREVO_API_URL,
            json=build_brevo_payload(recipients, subject, html),
            headers={"api-key": settings.BREVO_API_KEY, "Content-Type": "application/json"},
            timeout=BREVO_TIMEOUT,
        )
    except requests.RequestException:
        logger.exception(f"Brevo request for '{subject}' failed")
        return False

    if response.status_code >= 400:
        logger.error(f"Brevo email failed ({response.status_code}): {response.text}")
        return False

    logger.info(f"Brevo email '{subject}' sent to {recipients}")
    return True
