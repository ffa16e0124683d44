from dataclasses import asdict
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder

from csv_utils import export_expenses, export_transactions
from formatting import format_currency, format_date, format_month
from metrics import (
    monthly_breakdown,
    portfolio_ytd,
    profit,
    property_breakdown,
    property_ytd_financials,
    recent_months,
    recurring_commitments,
    total_expenses,
    total_income,
    within_period,
)
from models import TransactionType
from periods import Period, local_today, resolve_period
from scheduler import SchedulerManager
from services import CollectionService, Workspace, get_workspace


app = FastAPI(title="Rental Ledger")
scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def encode(value: Any) -> Any:
    return jsonable_encoder(value, custom_encoder={Decimal: str})


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def parse_as_of(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid as_of date") from exc


def register_collection_routes(
    path: str, select: Callable[[Workspace], CollectionService]
) -> None:
    @app.get(f"/api/{path}")
    def list_records(workspace: Workspace = Depends(get_workspace)):
        return [record.to_document() for record in select(workspace).list()]

    @app.get(f"/api/{path}/{{record_id}}")
    def get_record(record_id: str, workspace: Workspace = Depends(get_workspace)):
        record = select(workspace).get(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Not found")
        return record.to_document()

    @app.post(f"/api/{path}", status_code=201)
    def create_record(
        payload: dict[str, Any] = Body(...),
        workspace: Workspace = Depends(get_workspace),
    ):
        try:
            record = select(workspace).create(payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return record.to_document()

    @app.patch(f"/api/{path}/{{record_id}}")
    def update_record(
        record_id: str,
        payload: dict[str, Any] = Body(...),
        workspace: Workspace = Depends(get_workspace),
    ):
        try:
            record = select(workspace).update(record_id, payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if record is None:
            raise HTTPException(status_code=404, detail="Not found")
        return record.to_document()

    @app.delete(f"/api/{path}/{{record_id}}", status_code=204)
    def delete_record(record_id: str, workspace: Workspace = Depends(get_workspace)):
        if not select(workspace).delete(record_id):
            raise HTTPException(status_code=404, detail="Not found")
        return Response(status_code=204)


# Recurring routes come before the generic ``/api/expenses/{record_id}`` route.
@app.get("/api/expenses/recurring")
def api_recurring_expenses(
    as_of: Optional[str] = None, workspace: Workspace = Depends(get_workspace)
):
    pending = workspace.recurring.pending(parse_as_of(as_of))
    return {
        "templates": [t.to_document() for t in workspace.expenses.templates()],
        "pending": [instance.to_document() for instance in pending],
        "commitments": encode(
            asdict(recurring_commitments(workspace.expenses.list()))
        ),
    }


@app.post("/api/expenses/recurring/run")
def api_run_recurring_expenses(
    as_of: Optional[str] = None, workspace: Workspace = Depends(get_workspace)
):
    generated = workspace.recurring.catch_up(parse_as_of(as_of))
    return {"generated": [instance.to_document() for instance in generated]}


@app.get("/api/transactions/filtered")
def api_filtered_transactions(
    type: Optional[TransactionType] = None,
    property_id: Optional[str] = None,
    workspace: Workspace = Depends(get_workspace),
):
    return [
        txn.to_document() for txn in workspace.transactions.filtered(type, property_id)
    ]


register_collection_routes("expenses", lambda ws: ws.expenses)
register_collection_routes("transactions", lambda ws: ws.transactions)
register_collection_routes("rent-payments", lambda ws: ws.rent)
register_collection_routes("properties", lambda ws: ws.properties)
register_collection_routes("documents", lambda ws: ws.documents)
register_collection_routes("shared/tasks", lambda ws: ws.shared_hub.tasks)
register_collection_routes("shared/lists", lambda ws: ws.shared_hub.lists)
register_collection_routes("shared/ideas", lambda ws: ws.shared_hub.ideas)


@app.get("/api/financials/summary")
def api_financial_summary(
    request: Request,
    property_id: Optional[str] = None,
    include_ledger: bool = False,
    workspace: Workspace = Depends(get_workspace),
):
    period = period_from_request(request)
    records: list = workspace.transactions.list()
    if include_ledger:
        records = records + workspace.expenses.list() + workspace.rent.list()
    records = within_period(records, period)
    months = recent_months(monthly_breakdown(records))
    income = total_income(records, property_id)
    expenses = total_expenses(records, property_id)
    net = profit(records, property_id)
    return encode(
        {
            "period": {"slug": period.slug, "start": period.start, "end": period.end},
            "total_income": income,
            "total_expenses": expenses,
            "profit": net,
            "display": {
                "total_income": format_currency(income),
                "total_expenses": format_currency(expenses),
                "profit": format_currency(net),
            },
            "by_property": {
                key: asdict(totals)
                for key, totals in property_breakdown(records).items()
            },
            "by_month": [
                {
                    "month": key,
                    "label": format_month(key),
                    "income": totals.income,
                    "expense": totals.expense,
                }
                for key, totals in months
            ],
        }
    )


@app.get("/api/properties/{property_id}/ytd")
def api_property_ytd(property_id: str, workspace: Workspace = Depends(get_workspace)):
    prop = workspace.properties.get(property_id)
    if prop is None:
        raise HTTPException(status_code=404, detail="Property not found")
    financials = property_ytd_financials(
        prop, workspace.rent.list(), workspace.expenses.list(), local_today()
    )
    return encode(asdict(financials))


@app.get("/api/portfolio/ytd")
def api_portfolio_ytd(
    sort_by: str = "profit",
    direction: str = "desc",
    workspace: Workspace = Depends(get_workspace),
):
    try:
        summary = portfolio_ytd(
            workspace.properties.list(),
            workspace.rent.list(),
            workspace.expenses.list(),
            local_today(),
            sort_by=sort_by,
            descending=direction != "asc",
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return encode(asdict(summary))


@app.post("/api/properties/{property_id}/tenants")
def api_save_tenant(
    property_id: str,
    payload: dict[str, Any] = Body(...),
    workspace: Workspace = Depends(get_workspace),
):
    try:
        tenant = workspace.properties.add_or_update_tenant(property_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if tenant is None:
        raise HTTPException(status_code=404, detail="Property or tenant not found")
    return tenant.model_dump(mode="json", by_alias=True, exclude_none=True)


@app.delete("/api/properties/{property_id}/tenants", status_code=204)
def api_remove_all_tenants(
    property_id: str, workspace: Workspace = Depends(get_workspace)
):
    if workspace.properties.get(property_id) is None:
        raise HTTPException(status_code=404, detail="Property not found")
    workspace.properties.remove_tenant(property_id)
    return Response(status_code=204)


@app.delete("/api/properties/{property_id}/tenants/{tenant_id}", status_code=204)
def api_remove_tenant(
    property_id: str, tenant_id: str, workspace: Workspace = Depends(get_workspace)
):
    if not workspace.properties.remove_tenant(property_id, tenant_id):
        raise HTTPException(status_code=404, detail="Tenant not found")
    return Response(status_code=204)


@app.get("/api/tenants")
def api_tenant_roster(workspace: Workspace = Depends(get_workspace)):
    roster = workspace.properties.tenant_roster()
    return {
        "vacant": workspace.properties.vacant_count(),
        "tenants": [
            {
                "propertyId": entry.property_id,
                "propertyName": entry.property_name,
                "tenant": entry.tenant.model_dump(
                    mode="json", by_alias=True, exclude_none=True
                ),
                "lease": encode(asdict(entry.lease)) if entry.lease else None,
                "leaseEnd": format_date(entry.tenant.lease_end),
            }
            for entry in roster
        ],
    }


@app.post("/api/shared/tasks/{task_id}/complete")
def api_complete_task(task_id: str, workspace: Workspace = Depends(get_workspace)):
    task = workspace.shared_hub.complete_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task.to_document()


@app.post("/api/shared/tasks/{task_id}/highlight")
def api_highlight_task(task_id: str, workspace: Workspace = Depends(get_workspace)):
    task = workspace.shared_hub.highlight_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task.to_document()


@app.post("/api/shared/lists/{list_id}/highlight")
def api_highlight_list(list_id: str, workspace: Workspace = Depends(get_workspace)):
    shared_list = workspace.shared_hub.highlight_list(list_id)
    if shared_list is None:
        raise HTTPException(status_code=404, detail="List not found")
    return shared_list.to_document()


@app.post("/api/shared/lists/{list_id}/items", status_code=201)
def api_add_list_item(
    list_id: str,
    payload: dict[str, Any] = Body(...),
    workspace: Workspace = Depends(get_workspace),
):
    try:
        item = workspace.shared_hub.add_list_item(list_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if item is None:
        raise HTTPException(status_code=404, detail="List not found")
    return item.model_dump(mode="json", by_alias=True, exclude_none=True)


@app.post("/api/shared/lists/{list_id}/items/{item_id}/toggle")
def api_toggle_list_item(
    list_id: str, item_id: str, workspace: Workspace = Depends(get_workspace)
):
    shared_list = workspace.shared_hub.toggle_list_item(list_id, item_id)
    if shared_list is None:
        raise HTTPException(status_code=404, detail="List not found")
    return shared_list.to_document()


@app.delete("/api/shared/lists/{list_id}/items/{item_id}")
def api_delete_list_item(
    list_id: str, item_id: str, workspace: Workspace = Depends(get_workspace)
):
    shared_list = workspace.shared_hub.delete_list_item(list_id, item_id)
    if shared_list is None:
        raise HTTPException(status_code=404, detail="List not found")
    return shared_list.to_document()


@app.post("/api/shared/ideas/{idea_id}/highlight")
def api_highlight_idea(idea_id: str, workspace: Workspace = Depends(get_workspace)):
    idea = workspace.shared_hub.highlight_idea(idea_id)
    if idea is None:
        raise HTTPException(status_code=404, detail="Idea not found")
    return idea.to_document()


@app.get("/api/export/transactions.csv")
def api_export_transactions(workspace: Workspace = Depends(get_workspace)):
    content = export_transactions(workspace.transactions.list())
    return Response(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=transactions.csv"},
    )


@app.get("/api/export/expenses.csv")
def api_export_expenses(workspace: Workspace = Depends(get_workspace)):
    content = export_expenses(workspace.expenses.list())
    return Response(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=expenses.csv"},
    )


@app.get("/api/notifications")
def api_notifications(workspace: Workspace = Depends(get_workspace)):
    recent = getattr(workspace.notifications, "recent", None)
    entries = recent() if recent else []
    return encode([asdict(entry) for entry in entries])


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
