from __future__ import annotations

import logging
import os
from typing import Optional

import requests

from services.exceptions import DeliveryError


logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"


def send_email(*, to_email: str, subject: str, html: str, text: Optional[str] = None) -> None:
    """
    Sends email using Brevo Transactional Email API.
    Requires:
      - BREVO_API_KEY
      - BREVO_FROM (email) OR EMAIL_FROM/SMTP_FROM
    """
    api_key = os.getenv("BREVO_API_KEY")
    if not api_key:
        logger.error("BREVO_API_KEY is not set")
        raise DeliveryError()

    from_email = (
        os.getenv("BREVO_FROM")
        or os.getenv("EMAIL_FROM")
        or os.getenv("SMTP_FROM")
    )
    if not from_email:
        logger.error("BREVO_FROM (or EMAIL_FROM/SMTP_FROM) is not set")
        raise DeliveryError()

    payload = {
        "sender": {"email": from_email, "name": os.getenv("BREVO_SENDER_NAME", "Accounts")},
        "to": [{"email": to_email}],
        "subject": subject,
        "htmlContent": html,
    }
    if text:
        payload["textContent"] = text

    try:
        resp = requests.post(
            BREVO_URL,
            headers={
                "accept": "application/json",
                "api-key": api_key,
                "content-type": "application/json",
            },
            json=payload,
            timeout=15,
        )
    except requests.RequestException as e:
        logger.error("Brevo request to %s failed: %s", to_email, e)
        raise DeliveryError() from e
    if resp.status_code >= 300:
        logger.error("Brevo send failed (%s): %s", resp.status_code, resp.text)
        raise DeliveryError()
