"""
Clock helpers.

כל עמודות הזמן נשמרות כ-UTC naive (DateTime ללא timezone), לכן כל השוואה
מול ה-DB חייבת להשתמש באותו פורמט. רכיבים שתלויים ב"עכשיו" מקבלים Clock
בבנאי כדי שבדיקות יוכלו לקבע את הזמן.
"""
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """UTC naive: תואם לעמודות DateTime במודלים"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """המרת datetime עם timezone (למשל מ-HelloAsso) ל-UTC naive"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def fixed_clock(instant: datetime) -> Clock:
    """Clock שמחזיר תמיד את אותו רגע: לבדיקות ולהרצות חוזרות"""
    return lambda: instant
