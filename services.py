from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import date, datetime
from functools import lru_cache
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

from pydantic import BaseModel
from rapidfuzz.distance import Levenshtein

from config import get_settings
from document_store import (
    SHARED_IDEAS,
    SHARED_LISTS,
    SHARED_TASKS,
    DocumentStore,
)
from metrics import filter_transactions
from models import ExpenseCategory, NotificationLevel, TaskStatus, TransactionType
from periods import LeaseStatus, lease_status, local_now
from recurrence import RecurringExpenseEngine
from schemas import (
    LEGACY_TENANT_ID,
    DocumentIn,
    DocumentRecord,
    ExpenseIn,
    ExpenseRecord,
    ListItem,
    ListItemIn,
    Property,
    PropertyIn,
    RentPayment,
    RentPaymentIn,
    SharedIdea,
    SharedIdeaIn,
    SharedList,
    SharedListIn,
    SharedTask,
    SharedTaskIn,
    StoredRecord,
    Tenant,
    TenantIn,
    Transaction,
    TransactionIn,
)


logger = logging.getLogger(__name__)

Notifier = Callable[[str, NotificationLevel], None]
Sink = Callable[[list[dict[str, Any]]], None]
HubSink = Callable[
    [
        Optional[list[dict[str, Any]]],
        Optional[list[dict[str, Any]]],
        Optional[list[dict[str, Any]]],
    ],
    None,
]

R = TypeVar("R", bound=StoredRecord)
Updates = Union[Mapping[str, Any], Callable[[Any], Mapping[str, Any]]]
RecordData = Union[Mapping[str, Any], BaseModel]


def new_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class Notification:
    message: str
    level: NotificationLevel
    at: datetime


class NotificationLog:
    """Default notification sink: keeps the latest messages and logs each one."""

    def __init__(self, limit: int = 50) -> None:
        self._entries: deque[Notification] = deque(maxlen=limit)
        self._lock = threading.Lock()

    def __call__(
        self, message: str, level: NotificationLevel = NotificationLevel.info
    ) -> None:
        level = NotificationLevel(level)
        with self._lock:
            self._entries.append(Notification(message, level, local_now()))
        log_level = logging.ERROR if level == NotificationLevel.error else logging.INFO
        logger.log(log_level, "notification: level=%s message=%s", level.value, message)

    def recent(self) -> list[Notification]:
        with self._lock:
            return list(reversed(self._entries))


def normalize_category(raw: Optional[str]) -> str:
    """Map free text onto a known expense category when it is a near miss.

    Exact matches (ignoring case, spaces and dashes) and unique matches within
    one edit are mapped; anything else is kept as typed.
    """
    text = (raw or "").strip()
    if not text:
        return ExpenseCategory.other.value
    key = text.lower().replace("-", "_").replace(" ", "_")
    known = [category.value for category in ExpenseCategory]
    if key in known:
        return key

    best_distance: Optional[int] = None
    best: list[str] = []
    for name in known:
        dist = int(Levenshtein.distance(key, name))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [name]
        elif dist == best_distance:
            best.append(name)
    if best_distance is not None and best_distance <= 1 and len(best) == 1:
        return best[0]
    return text


def _field_names(model: type[BaseModel]) -> dict[str, str]:
    names = {name: name for name in model.model_fields}
    for name, info in model.model_fields.items():
        if info.alias:
            names[info.alias] = name
    return names


class CollectionService(Generic[R]):
    """One domain collection held in memory and mirrored to a sink.

    Every change is computed from the collection as it is when the change
    runs, under the collection lock, and ends in exactly one sink call with
    the whole resulting collection.
    """

    record_type: type[R]
    input_schema: type[BaseModel]
    name = "records"
    label = "Record"
    created_message: Optional[str] = None
    updated_message: Optional[str] = None
    deleted_message: Optional[str] = None

    def __init__(self, sink: Sink, notify: Notifier) -> None:
        self._sink = sink
        self._notify = notify
        self._records: list[R] = []
        self._lock = threading.RLock()

    def notify(
        self, message: str, level: NotificationLevel = NotificationLevel.success
    ) -> None:
        self._notify(message, level)

    def list(self) -> list[R]:
        with self._lock:
            return list(self._records)

    def get(self, record_id: Union[str, int]) -> Optional[R]:
        record_id = str(record_id)
        with self._lock:
            return next((r for r in self._records if r.id == record_id), None)

    def hydrate(self, documents: Iterable[Union[Mapping[str, Any], R]]) -> None:
        records: list[R] = []
        errors: list[str] = []
        for idx, document in enumerate(documents, start=1):
            try:
                if isinstance(document, self.record_type):
                    records.append(document)
                else:
                    records.append(self.record_type.model_validate(document))
            except ValueError as exc:
                errors.append(f"{self.name} document {idx}: {exc}")
        if errors:
            raise ValueError("; ".join(errors))
        with self._lock:
            self._records = records

    def mutate(self, change: Callable[[list[R]], Optional[list[R]]]) -> list[R]:
        """Apply ``change`` to the current collection and persist the result.

        ``change`` receives a copy of the current records and returns the new
        list, or ``None`` to leave the collection (and the sink) alone.
        """
        with self._lock:
            updated = change(list(self._records))
            if updated is None:
                return list(self._records)
            self._records = updated
            self._persist(updated)
            return list(updated)

    def _persist(self, records: list[R]) -> None:
        documents = [record.to_document() for record in records]
        try:
            self._sink(documents)
        except Exception:
            logger.exception("persist_failed: collection=%s", self.name)
            self._notify(f"Could not save {self.name}", NotificationLevel.error)

    def _prepare_values(self, values: dict[str, Any]) -> dict[str, Any]:
        return values

    def _prepare(self, data: RecordData) -> R:
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json", by_alias=True, exclude_none=True)
        payload = self.input_schema.model_validate(data)
        values = payload.model_dump(mode="json", exclude_none=True)
        values.setdefault("id", new_id())
        values.setdefault("created_at", local_now())
        return self.record_type.model_validate(self._prepare_values(values))

    def _created_message(self, record: R) -> Optional[str]:
        return self.created_message

    def create(self, data: RecordData) -> R:
        record = self._prepare(data)

        def append(current: list[R]) -> list[R]:
            if any(existing.id == record.id for existing in current):
                raise ValueError(f"{self.label} {record.id} already exists")
            return current + [record]

        self.mutate(append)
        message = self._created_message(record)
        if message:
            self.notify(message, NotificationLevel.success)
        return record

    def _merge(self, record: R, overrides: Mapping[str, Any]) -> R:
        names = _field_names(self.record_type)
        values = record.model_dump(mode="json")
        for key, value in overrides.items():
            values[names.get(key, key)] = value
        values["id"] = record.id
        merged = self.record_type.model_validate(values)
        self.input_schema.model_validate(merged.model_dump(mode="json"))
        return merged

    def update(self, record_id: Union[str, int], updates: Updates) -> Optional[R]:
        """Replace fields of one record.

        ``updates`` is a mapping of field overrides or a function that takes the
        current record and returns them. Returns ``None`` when no record matches.
        The merged record must pass the same checks as ``create``; a
        ``ValueError`` leaves the collection and the sink untouched.
        """
        record_id = str(record_id)
        applied: list[R] = []

        def apply(current: list[R]) -> Optional[list[R]]:
            for idx, record in enumerate(current):
                if record.id != record_id:
                    continue
                overrides = updates(record) if callable(updates) else updates
                merged = self._merge(record, overrides)
                applied.append(merged)
                return current[:idx] + [merged] + current[idx + 1 :]
            return None

        self.mutate(apply)
        if not applied:
            self.notify(f"{self.label} not found", NotificationLevel.error)
            return None
        if self.updated_message:
            self.notify(self.updated_message, NotificationLevel.success)
        return applied[0]

    def delete(self, record_id: Union[str, int]) -> bool:
        record_id = str(record_id)
        removed: list[R] = []

        def drop(current: list[R]) -> Optional[list[R]]:
            kept = [record for record in current if record.id != record_id]
            if len(kept) == len(current):
                return None
            removed.extend(record for record in current if record.id == record_id)
            return kept

        self.mutate(drop)
        if removed and self.deleted_message:
            self.notify(self.deleted_message, NotificationLevel.info)
        return bool(removed)


class ExpenseService(CollectionService[ExpenseRecord]):
    record_type = ExpenseRecord
    input_schema = ExpenseIn
    name = "expenses"
    label = "Expense"
    created_message = "Expense recorded"
    updated_message = "Expense updated"
    deleted_message = "Expense deleted"

    def _prepare_values(self, values: dict[str, Any]) -> dict[str, Any]:
        values["category"] = normalize_category(values.get("category"))
        return values

    def templates(self) -> list[ExpenseRecord]:
        return [expense for expense in self.list() if expense.is_template]

    def instances_of(self, template_id: str) -> list[ExpenseRecord]:
        return [
            expense
            for expense in self.list()
            if expense.generated_from_template == str(template_id)
        ]


class TransactionService(CollectionService[Transaction]):
    record_type = Transaction
    input_schema = TransactionIn
    name = "transactions"
    label = "Transaction"
    updated_message = "Transaction updated"
    deleted_message = "Transaction deleted"

    def _created_message(self, record: Transaction) -> Optional[str]:
        if record.type == TransactionType.income:
            return "Income added"
        return "Expense added"

    def filtered(
        self,
        type: Optional[TransactionType] = None,
        property_id: Optional[str] = None,
    ) -> list[Transaction]:
        return filter_transactions(self.list(), type, property_id)


class RentService(CollectionService[RentPayment]):
    record_type = RentPayment
    input_schema = RentPaymentIn
    name = "rent_payments"
    label = "Payment"
    created_message = "Rent payment recorded"
    updated_message = "Payment updated"
    deleted_message = "Payment deleted"

    def for_property(self, property_id: str) -> list[RentPayment]:
        return [p for p in self.list() if p.property_id == str(property_id)]

    def for_month(self, month: str) -> list[RentPayment]:
        return [p for p in self.list() if p.month == month]


@dataclass(frozen=True)
class TenantRosterEntry:
    property_id: str
    property_name: str
    tenant: Tenant
    lease: Optional[LeaseStatus]


def _promote_legacy(tenant: Tenant) -> Tenant:
    if tenant.id == LEGACY_TENANT_ID:
        return tenant.model_copy(update={"id": new_id()})
    return tenant


def _with_tenants(prop: Property, tenants: list[Tenant]) -> Property:
    return prop.model_copy(
        update={"tenants": tenants, "tenant": tenants[0] if tenants else None}
    )


class PropertyService(CollectionService[Property]):
    record_type = Property
    input_schema = PropertyIn
    name = "properties"
    label = "Property"
    created_message = "Property added"
    deleted_message = "Property deleted"

    def _prepare_values(self, values: dict[str, Any]) -> dict[str, Any]:
        tenants = [
            {**tenant, "id": tenant.get("id") or new_id()}
            for tenant in values.get("tenants", [])
        ]
        values["tenants"] = tenants
        values["tenant"] = tenants[0] if tenants else None
        return values

    def _property_missing(self, property_id: str) -> None:
        logger.error("tenant_change_failed: no property matched id=%s", property_id)
        self.notify("Error: property not found", NotificationLevel.error)

    def add_or_update_tenant(
        self, property_id: Union[str, int], tenant_data: RecordData
    ) -> Optional[Tenant]:
        """Update a tenant matched by id, or add a new one with a fresh id.

        The first tenant is mirrored into the legacy ``tenant`` field.
        """
        if isinstance(tenant_data, BaseModel):
            tenant_data = tenant_data.model_dump(mode="json", by_alias=True)
        tenant_in = TenantIn.model_validate(tenant_data)
        property_id = str(property_id)
        saved: list[Tenant] = []
        missing: list[str] = []

        def apply(current: list[Property]) -> Optional[list[Property]]:
            for idx, prop in enumerate(current):
                if prop.id != property_id:
                    continue
                tenants = prop.tenant_list()
                values = tenant_in.model_dump(mode="json", exclude_none=True)
                tenant_id = values.pop("id", None)
                if tenant_id and tenant_id != LEGACY_TENANT_ID:
                    pos = next(
                        (i for i, t in enumerate(tenants) if t.id == tenant_id), None
                    )
                    if pos is None:
                        missing.append("tenant")
                        return None
                    tenant = Tenant.model_validate(
                        {**tenants[pos].model_dump(mode="json"), **values}
                    )
                    tenants[pos] = tenant
                elif tenant_id == LEGACY_TENANT_ID:
                    legacy = next(
                        (t for t in tenants if t.id == LEGACY_TENANT_ID), None
                    )
                    if legacy is None:
                        missing.append("tenant")
                        return None
                    tenant = Tenant.model_validate(
                        {**legacy.model_dump(mode="json"), **values, "id": new_id()}
                    )
                    tenants = [tenant] + [
                        t for t in tenants if t.id != LEGACY_TENANT_ID
                    ]
                else:
                    tenant = Tenant.model_validate({**values, "id": new_id()})
                    tenants = [_promote_legacy(t) for t in tenants] + [tenant]
                saved.append(tenant)
                return current[:idx] + [_with_tenants(prop, tenants)] + current[idx + 1 :]
            missing.append("property")
            return None

        self.mutate(apply)
        if "property" in missing:
            self._property_missing(property_id)
            return None
        if "tenant" in missing:
            self.notify("Tenant not found", NotificationLevel.error)
            return None
        self.notify("Tenant saved", NotificationLevel.success)
        return saved[0]

    def remove_tenant(
        self, property_id: Union[str, int], tenant_id: Optional[str] = None
    ) -> bool:
        """Remove one tenant, or every tenant when ``tenant_id`` is not given."""
        property_id = str(property_id)
        found: list[bool] = []
        changed: list[bool] = []

        def apply(current: list[Property]) -> Optional[list[Property]]:
            for idx, prop in enumerate(current):
                if prop.id != property_id:
                    continue
                found.append(True)
                tenants = prop.tenant_list()
                if tenant_id:
                    kept = [t for t in tenants if t.id != str(tenant_id)]
                    if len(kept) == len(tenants):
                        return None
                else:
                    kept = []
                changed.append(True)
                return current[:idx] + [_with_tenants(prop, kept)] + current[idx + 1 :]
            return None

        self.mutate(apply)
        if not found:
            self._property_missing(property_id)
            return False
        if not changed:
            return False
        self.notify("Tenant removed", NotificationLevel.info)
        return True

    def tenant_roster(self, today: Optional[date] = None) -> list[TenantRosterEntry]:
        roster = [
            TenantRosterEntry(
                property_id=prop.id,
                property_name=prop.name,
                tenant=tenant,
                lease=lease_status(tenant.lease_end, today),
            )
            for prop in self.list()
            for tenant in prop.tenant_list()
        ]
        roster.sort(key=lambda entry: (entry.tenant.name or "").lower())
        return roster

    def vacant_count(self) -> int:
        count = 0
        for prop in self.list():
            tenants = prop.tenant_list()
            if not tenants or tenants[0].status == "vacant":
                count += 1
        return count


class DocumentService(CollectionService[DocumentRecord]):
    record_type = DocumentRecord
    input_schema = DocumentIn
    name = "documents"
    label = "Document"
    created_message = "Document added"
    deleted_message = "Document removed"

    def for_property(self, property_id: str) -> list[DocumentRecord]:
        return [d for d in self.list() if d.property_id == str(property_id)]


class SharedTaskService(CollectionService[SharedTask]):
    record_type = SharedTask
    input_schema = SharedTaskIn
    name = SHARED_TASKS
    label = "Task"
    created_message = "Task added"
    deleted_message = "Task removed"


class SharedListService(CollectionService[SharedList]):
    record_type = SharedList
    input_schema = SharedListIn
    name = SHARED_LISTS
    label = "List"
    created_message = "List created"
    deleted_message = "List removed"

    def _prepare_values(self, values: dict[str, Any]) -> dict[str, Any]:
        values["items"] = [
            {**item, "id": item.get("id") or new_id()}
            for item in values.get("items", [])
        ]
        return values


class SharedIdeaService(CollectionService[SharedIdea]):
    record_type = SharedIdea
    input_schema = SharedIdeaIn
    name = SHARED_IDEAS
    label = "Idea"
    created_message = "Idea saved"
    deleted_message = "Idea removed"


class SharedHubService:
    """Tasks, lists and ideas sharing one three-slot sink ``(lists, tasks, ideas)``."""

    def __init__(self, sink: HubSink, notify: Notifier, current_user: str) -> None:
        self.current_user = current_user
        self.lists = SharedListService(lambda docs: sink(docs, None, None), notify)
        self.tasks = SharedTaskService(lambda docs: sink(None, docs, None), notify)
        self.ideas = SharedIdeaService(lambda docs: sink(None, None, docs), notify)

    def collections(self) -> list[CollectionService]:
        return [self.lists, self.tasks, self.ideas]

    def complete_task(self, task_id: str) -> Optional[SharedTask]:
        def toggle(task: SharedTask) -> dict[str, Any]:
            done = task.status != TaskStatus.done.value
            return {
                "status": TaskStatus.done.value if done else TaskStatus.pending.value,
                "completed_by": self.current_user if done else None,
                "completed_at": local_now() if done else None,
            }

        return self.tasks.update(task_id, toggle)

    def highlight_task(self, task_id: str) -> Optional[SharedTask]:
        return self.tasks.update(task_id, lambda t: {"highlighted": not t.highlighted})

    def highlight_list(self, list_id: str) -> Optional[SharedList]:
        return self.lists.update(list_id, lambda l: {"highlighted": not l.highlighted})

    def highlight_idea(self, idea_id: str) -> Optional[SharedIdea]:
        return self.ideas.update(idea_id, lambda i: {"highlighted": not i.highlighted})

    def add_list_item(self, list_id: str, item: RecordData) -> Optional[ListItem]:
        if isinstance(item, BaseModel):
            item = item.model_dump(mode="json", by_alias=True)
        values = ListItemIn.model_validate(item).model_dump(mode="json", exclude_none=True)
        new_item = ListItem.model_validate({**values, "id": values.get("id") or new_id()})
        updated = self.lists.update(list_id, lambda l: {"items": [*l.items, new_item]})
        return new_item if updated else None

    def toggle_list_item(self, list_id: str, item_id: str) -> Optional[SharedList]:
        def toggle(shared_list: SharedList) -> dict[str, Any]:
            items = []
            for item in shared_list.items:
                if item.id == item_id:
                    checked = not item.checked
                    item = item.model_copy(
                        update={
                            "checked": checked,
                            "checked_by": self.current_user if checked else None,
                            "checked_at": local_now() if checked else None,
                        }
                    )
                items.append(item)
            return {"items": items}

        return self.lists.update(list_id, toggle)

    def delete_list_item(self, list_id: str, item_id: str) -> Optional[SharedList]:
        return self.lists.update(
            list_id,
            lambda l: {"items": [item for item in l.items if item.id != item_id]},
        )


class Workspace:
    """Every domain collection of one account, wired to a document store."""

    def __init__(
        self,
        store: DocumentStore,
        notify: Optional[Notifier] = None,
        current_user: Optional[str] = None,
    ) -> None:
        self.store = store
        self.notifications = notify or NotificationLog()
        self.current_user = current_user or get_settings().current_user
        self.expenses = ExpenseService(store.sink(ExpenseService.name), self.notifications)
        self.transactions = TransactionService(
            store.sink(TransactionService.name), self.notifications
        )
        self.rent = RentService(store.sink(RentService.name), self.notifications)
        self.properties = PropertyService(
            store.sink(PropertyService.name), self.notifications
        )
        self.documents = DocumentService(
            store.sink(DocumentService.name), self.notifications
        )
        self.shared_hub = SharedHubService(
            store.save_shared_hub, self.notifications, self.current_user
        )
        self.recurring = RecurringExpenseEngine(self.expenses)

    def collections(self) -> list[CollectionService]:
        return [
            self.expenses,
            self.transactions,
            self.rent,
            self.properties,
            self.documents,
            *self.shared_hub.collections(),
        ]

    def hydrate(self) -> None:
        for collection in self.collections():
            collection.hydrate(self.store.load(collection.name))
        logger.info(
            "workspace_hydrated: %s",
            " ".join(f"{c.name}={len(c.list())}" for c in self.collections()),
        )


@lru_cache(maxsize=1)
def get_workspace() -> Workspace:
    from database import init_db

    init_db()
    workspace = Workspace(DocumentStore())
    workspace.hydrate()
    return workspace
