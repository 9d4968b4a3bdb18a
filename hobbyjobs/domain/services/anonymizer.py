"""
PII Anonymizer: אנונימיזציה חד-כיוונית של שדות אישיים (RGPD).

כל ערך מוחלף ב-HMAC-SHA256 של "value|user_id" עם מפתח סודי, מקוצר ל-prefix
הקסדצימלי באורך קבוע. המפתח מונע dictionary attack על ערכים קצרים
(טלפון, שם פרטי), וה-user_id בקלט מבטיח ששני משתמשים עם אותו ערך
יקבלו hash שונה: שדה email נשאר ייחודי.
"""
import hashlib
import hmac
from typing import Optional

from hobbyjobs.core.config import settings
from hobbyjobs.db.models.user import User

HASH_PREFIX_LENGTH = 16
ANONYMIZED_EMAIL_DOMAIN = "anonymized.local"
_PASSWORD_PLACEHOLDER = "ANONYMIZED"


class PiiAnonymizer:

    def __init__(self, key: Optional[str] = None):
        self._key = (key if key is not None else settings.RGPD_ANONYMIZATION_KEY).encode("utf-8")

    def hash_value(self, value: Optional[str], user_id: int) -> str:
        message = f"{value or ''}|{user_id}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()[:HASH_PREFIX_LENGTH]

    def anonymize(self, user: User) -> User:
        """Overwrite every PII field of ``user`` in place and flag it anonymized."""
        user.first_name = f"ANON-{self.hash_value(user.first_name, user.id)}"
        user.last_name = f"ANON-{self.hash_value(user.last_name, user.id)}"
        user.email = f"anon-{self.hash_value(user.email, user.id)}@{ANONYMIZED_EMAIL_DOMAIN}"
        if user.phone is not None:
            user.phone = self.hash_value(user.phone, user.id)
        user.password_hash = self.hash_value(_PASSWORD_PLACEHOLDER, user.id)
        user.anonymized = True
        return user
