from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class RecurringFrequency(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    annually = "annually"


class RentStatus(str, Enum):
    paid = "paid"
    partial = "partial"
    unpaid = "unpaid"
    late = "late"


COLLECTED_RENT_STATUSES = frozenset({RentStatus.paid.value, RentStatus.partial.value})


class ExpenseCategory(str, Enum):
    mortgage = "mortgage"
    insurance = "insurance"
    property_tax = "property_tax"
    utilities = "utilities"
    maintenance = "maintenance"
    repairs = "repairs"
    hoa = "hoa"
    management = "management"
    landscaping = "landscaping"
    cleaning = "cleaning"
    supplies = "supplies"
    legal = "legal"
    advertising = "advertising"
    other = "other"


class TaskStatus(str, Enum):
    pending = "pending"
    done = "done"


class NotificationLevel(str, Enum):
    success = "success"
    info = "info"
    error = "error"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class CollectionDocument(Base, TimestampMixin):
    """One row per domain collection; the payload is the full list of documents."""

    __tablename__ = "collection_documents"

    name: Mapped[str] = mapped_column(String(60), primary_key=True)
    payload: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
