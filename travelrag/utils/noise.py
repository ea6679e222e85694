"""Filters for correspondence that should never enter the retrieval corpus"""
import re
from typing import Optional

# System notices, confirmations and automated mail carry no planning context
NOISE_SUBJECT_PATTERNS = [
    re.compile(r"^(re:\s*)*delivery status notification", re.IGNORECASE),
    re.compile(r"^(re:\s*)*auto[- ]?reply", re.IGNORECASE),
    re.compile(r"^(re:\s*)*automatic reply", re.IGNORECASE),
    re.compile(r"^(re:\s*)*out of office", re.IGNORECASE),
    re.compile(r"^(re:\s*)*undeliverable", re.IGNORECASE),
    re.compile(r"^(re:\s*)*mail delivery (failed|subsystem)", re.IGNORECASE),
    re.compile(r"^(re:\s*)*returned mail", re.IGNORECASE),
    re.compile(r"^(re:\s*)*failure notice", re.IGNORECASE),
    re.compile(r"booking confirmation", re.IGNORECASE),
    re.compile(r"reservation confirmed", re.IGNORECASE),
    re.compile(r"payment (receipt|confirmation|received)", re.IGNORECASE),
    re.compile(r"order confirmation", re.IGNORECASE),
    re.compile(r"your (receipt|invoice|order)", re.IGNORECASE),
    re.compile(r"newsletter", re.IGNORECASE),
    re.compile(r"subscription", re.IGNORECASE),
    re.compile(r"verify your (email|account)", re.IGNORECASE),
    re.compile(r"password reset", re.IGNORECASE),
    re.compile(r"security alert", re.IGNORECASE),
    re.compile(r"login notification", re.IGNORECASE),
    re.compile(r"two[- ]?factor", re.IGNORECASE),
    re.compile(r"verification code", re.IGNORECASE),
    re.compile(r"no[- ]?reply", re.IGNORECASE),
    re.compile(r"do[- ]?not[- ]?reply", re.IGNORECASE),
]

NOISE_SENDER_PATTERNS = [
    re.compile(r"noreply@", re.IGNORECASE),
    re.compile(r"no-reply@", re.IGNORECASE),
    re.compile(r"donotreply@", re.IGNORECASE),
    re.compile(r"do-not-reply@", re.IGNORECASE),
    re.compile(r"mailer-daemon@", re.IGNORECASE),
    re.compile(r"postmaster@", re.IGNORECASE),
    re.compile(r"notifications?@", re.IGNORECASE),
    re.compile(r"alerts?@", re.IGNORECASE),
    re.compile(r"system@", re.IGNORECASE),
    re.compile(r"automated@", re.IGNORECASE),
    re.compile(r"@accounts\.google\.com$", re.IGNORECASE),
    re.compile(r"support@(paypal|stripe|square)\.", re.IGNORECASE),
    re.compile(r"@(booking|agoda|expedia|airbnb|hotels)\.", re.IGNORECASE),
    re.compile(r"@(mailchimp|sendgrid|mailgun|amazonaws)\.", re.IGNORECASE),
]


def is_noise_correspondence(subject: Optional[str], sender: Optional[str]) -> bool:
    """True when a message is an automated notice rather than customer correspondence"""
    if subject and any(p.search(subject) for p in NOISE_SUBJECT_PATTERNS):
        return True
    if sender and any(p.search(sender) for p in NOISE_SENDER_PATTERNS):
        return True
    return False
