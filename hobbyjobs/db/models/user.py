"""
User Model - חשבון משתמש (הורה/משפחה) עם שדות PII שכפופים ל-RGPD
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum as SQLEnum, Index

from hobbyjobs.core.clock import utcnow
from hobbyjobs.db.database import Base


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    DELETED = "DELETED"


class User(Base):
    """User account; PII fields are overwritten in place once anonymized"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(20), nullable=True)
    password_hash = Column(String(255), nullable=False)

    status = Column(SQLEnum(UserStatus), nullable=False, default=UserStatus.ACTIVE)
    # אחרי True הרשומה לא תיבחר יותר ע"י ה-reader
    anonymized = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_users_status_anonymized_updated", "status", "anonymized", "updated_at"),
    )
