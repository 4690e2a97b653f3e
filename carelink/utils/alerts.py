import logging
from typing import Optional

from twilio.rest import Client

from carelink import config

logger = logging.getLogger(__name__)

# Outbound text messages to hospitals. Without Twilio credentials the message
# is only logged, which is what development and tests rely on.

def twilio_configured() -> bool:
    return bool(config.TWILIO_SID and config.TWILIO_AUTH and config.TWILIO_PHONE)

def send_sms(phone: str, message: str) -> Optional[str]:
    """Send ``message`` to ``phone``; returns the Twilio message SID, or None for a mock send.

    Twilio errors propagate so callers can decide whether a failed text matters.
    """
    if not twilio_configured():
        logger.info(f"[MOCK SMS] to {phone}: {message}")
        return None

    client = Client(config.TWILIO_SID, config.TWILIO_AUTH)
    sent = client.messages.create(to=phone, from_=config.TWILIO_PHONE, body=message)
    logger.info(f"SMS {sent.sid} queued for {phone}")
    return sent.sid
