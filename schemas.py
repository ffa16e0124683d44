import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from formatting import parse_amount
from models import (
    COLLECTED_RENT_STATUSES,
    ExpenseCategory,
    RecurringFrequency,
    TaskStatus,
    TransactionType,
)


LEGACY_TENANT_ID = "legacy"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _coerce_ref(value: Any) -> Any:
    value = _blank_to_none(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _coerce_amount(value: Any) -> Any:
    value = _blank_to_none(value)
    return Decimal("0") if value is None else value


def _parse_typed_amount(value: Any) -> Any:
    if isinstance(value, str):
        return parse_amount(value)
    return value


Ref = Annotated[str, BeforeValidator(_coerce_ref)]
OptionalRef = Annotated[Optional[str], BeforeValidator(_coerce_ref)]
OptionalDate = Annotated[Optional[dt.date], BeforeValidator(_blank_to_none)]
OptionalDateTime = Annotated[Optional[datetime], BeforeValidator(_blank_to_none)]
Money = Annotated[Decimal, BeforeValidator(_coerce_amount)]
OptionalMoney = Annotated[Optional[Decimal], BeforeValidator(_blank_to_none)]
MonthKey = Annotated[str, Field(pattern=r"^\d{4}-\d{2}$")]
# Form input: "$1,234.50", "1.234,50" or a number; never negative.
InputAmount = Annotated[Decimal, BeforeValidator(_parse_typed_amount), Field(ge=0)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


class StoredRecord(CamelModel):
    """A document held in a domain collection.

    Attributes are snake_case; the stored document uses camelCase keys. Keys the
    model does not know about are kept so older documents survive a rewrite.
    """

    id: Ref
    created_at: OptionalDateTime = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExpenseRecord(StoredRecord):
    amount: Money = Decimal("0")
    date: OptionalDate = None
    property_id: OptionalRef = None
    property_name: Optional[str] = None
    category: str = ExpenseCategory.other.value
    description: Optional[str] = None
    vendor: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    recurring: bool = False
    is_template: bool = False
    recurring_frequency: Optional[str] = None
    # Form input may hand this over as text; the recurrence engine parses it.
    due_day: Optional[Union[int, str]] = None
    generated_from_template: OptionalRef = None
    generated_for_month: Optional[str] = None


class Transaction(StoredRecord):
    type: TransactionType
    amount: Money = Decimal("0")
    category: Optional[str] = None
    property_id: OptionalRef = None
    date: OptionalDate = None
    description: Optional[str] = None
    recurring: bool = False
    frequency: Optional[str] = None


class RentPayment(StoredRecord):
    property_id: OptionalRef = None
    tenant_name: Optional[str] = None
    month: Optional[str] = None
    amount: Money = Decimal("0")
    date_paid: OptionalDate = None
    status: str = "paid"
    notes: Optional[str] = None

    @property
    def is_collected(self) -> bool:
        return self.status in COLLECTED_RENT_STATUSES


class Tenant(CamelModel):
    id: OptionalRef = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    lease_start: OptionalDate = None
    lease_end: OptionalDate = None
    monthly_rent: OptionalMoney = None
    security_deposit: OptionalMoney = None
    status: Optional[str] = None


class Property(StoredRecord):
    name: str = ""
    address: Optional[str] = None
    monthly_rent: Money = Decimal("0")
    current_value: OptionalMoney = None
    tenants: list[Tenant] = Field(default_factory=list)
    # Single-tenant shape read by older clients; mirrors ``tenants[0]``.
    tenant: Optional[Tenant] = None

    def tenant_list(self) -> list[Tenant]:
        if self.tenants:
            return list(self.tenants)
        if self.tenant is not None and self.tenant.name:
            return [self.tenant.model_copy(update={"id": LEGACY_TENANT_ID})]
        return []


class DocumentRecord(StoredRecord):
    name: Optional[str] = None
    type: Optional[str] = None
    property_id: OptionalRef = None
    url: Optional[str] = None
    notes: Optional[str] = None
    expiration_date: OptionalDate = None


class ListItem(CamelModel):
    id: OptionalRef = None
    text: Optional[str] = None
    checked: bool = False
    checked_by: Optional[str] = None
    checked_at: OptionalDateTime = None


class SharedTask(StoredRecord):
    title: Optional[str] = None
    status: str = TaskStatus.pending.value
    due_date: OptionalDate = None
    assigned_to: Optional[str] = None
    completed_by: Optional[str] = None
    completed_at: OptionalDateTime = None
    highlighted: bool = False


class SharedList(StoredRecord):
    name: Optional[str] = None
    items: list[ListItem] = Field(default_factory=list)
    highlighted: bool = False


class SharedIdea(StoredRecord):
    title: Optional[str] = None
    url: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    highlighted: bool = False


class RecordIn(CamelModel):
    id: OptionalRef = None
    created_at: OptionalDateTime = None


class ExpenseIn(RecordIn):
    amount: InputAmount
    date: OptionalDate = None
    property_id: OptionalRef = None
    property_name: Optional[str] = None
    category: str = Field(default=ExpenseCategory.other.value, max_length=60)
    description: Optional[str] = Field(default=None, max_length=500)
    vendor: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None
    recurring: bool = False
    is_template: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    generated_from_template: OptionalRef = None
    generated_for_month: Optional[MonthKey] = None

    @model_validator(mode="after")
    def _require_date_for_instances(self) -> "ExpenseIn":
        if not self.is_template and self.date is None:
            raise ValueError("Expense date is required")
        return self


class TransactionIn(RecordIn):
    type: TransactionType
    amount: InputAmount
    date: dt.date
    category: Optional[str] = Field(default=None, max_length=60)
    property_id: OptionalRef = None
    description: Optional[str] = Field(default=None, max_length=500)
    recurring: bool = False
    frequency: Optional[RecurringFrequency] = None


class RentPaymentIn(RecordIn):
    property_id: Ref
    tenant_name: Optional[str] = None
    month: MonthKey
    amount: InputAmount
    date_paid: OptionalDate = None
    status: str = Field(default="paid", min_length=1, max_length=20)
    notes: Optional[str] = None


class TenantIn(CamelModel):
    id: OptionalRef = None
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None
    lease_start: OptionalDate = None
    lease_end: OptionalDate = None
    monthly_rent: Optional[Decimal] = Field(default=None, ge=0)
    security_deposit: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[str] = None


class PropertyIn(RecordIn):
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = None
    monthly_rent: Decimal = Field(default=Decimal("0"), ge=0)
    current_value: Optional[Decimal] = Field(default=None, ge=0)
    tenants: list[TenantIn] = Field(default_factory=list)


class DocumentIn(RecordIn):
    name: str = Field(..., min_length=1, max_length=200)
    type: Optional[str] = None
    property_id: OptionalRef = None
    url: Optional[str] = None
    notes: Optional[str] = None
    expiration_date: OptionalDate = None


class ListItemIn(CamelModel):
    id: OptionalRef = None
    text: str = Field(..., min_length=1, max_length=200)
    checked: bool = False


class SharedTaskIn(RecordIn):
    title: str = Field(..., min_length=1, max_length=200)
    status: TaskStatus = TaskStatus.pending
    due_date: OptionalDate = None
    assigned_to: Optional[str] = None
    highlighted: bool = False


class SharedListIn(RecordIn):
    name: str = Field(..., min_length=1, max_length=120)
    items: list[ListItemIn] = Field(default_factory=list)
    highlighted: bool = False


class SharedIdeaIn(RecordIn):
    title: str = Field(..., min_length=1, max_length=200)
    url: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    highlighted: bool = False
