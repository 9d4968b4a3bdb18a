"""
אימות חתימת webhook נכנס מ-HelloAsso.

HelloAsso שולח ``X-HelloAsso-Signature: sha256=<hex>``: HMAC-SHA256 של גוף
הבקשה הגולמי עם הסוד המשותף. אם HELLOASSO_WEBHOOK_SECRET לא מוגדר (פיתוח),
כל בקשה מתקבלת.
"""
import hashlib
import hmac
from typing import Optional

from hobbyjobs.core.config import settings
from hobbyjobs.core.logging import get_logger

logger = get_logger(__name__)

_SIGNATURE_PREFIX = "sha256="


def compute_helloasso_signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{_SIGNATURE_PREFIX}{digest}"


def is_valid_helloasso_signature(
    signature_header: Optional[str],
    body: bytes,
    secret: Optional[str] = None,
) -> bool:
    secret = settings.HELLOASSO_WEBHOOK_SECRET if secret is None else secret
    if not secret:
        logger.debug("HelloAsso webhook secret not configured, signature not checked")
        return True

    if not signature_header or not signature_header.startswith(_SIGNATURE_PREFIX):
        return False

    # השוואה בטוחה מפני timing attacks
    return hmac.compare_digest(
        signature_header.strip().lower(),
        compute_helloasso_signature(body, secret),
    )
