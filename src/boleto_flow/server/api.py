"""JSON API the dashboard drives: queue, imports, dispatch, settings and backup."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from boleto_flow.exceptions import ParseError, ValidationError
from boleto_flow.models import ErpConfig, GatewayConfig, Record
from boleto_flow.runtime import Runtime
from boleto_flow.views import RecordFilter, StatusFilter, compute_stats, recent_records

router = APIRouter(prefix="/api", tags=["dashboard"])


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


class RecordEdit(BaseModel):
    customer_name: str | None = None
    phone: str | None = None
    channel_id: str | None = None
    agent_id: str | None = None


def _dump(record: Record) -> dict[str, Any]:
    return record.model_dump(mode="json")


def _not_found(record_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Record {record_id} not found")


# === Records ===

@router.get("/records")
async def list_records(
    status: StatusFilter = Query(default=StatusFilter.ALL, alias="filter"),
    search: str = "",
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    records = RecordFilter(status=status, search=search).apply(runtime.session.records)
    return {"count": len(records), "records": [_dump(r) for r in records]}


@router.patch("/records/{record_id}")
async def edit_record(
    record_id: str, edit: RecordEdit, runtime: Runtime = Depends(get_runtime)
) -> dict[str, Any]:
    try:
        updated = runtime.session.edit_record(record_id, **edit.model_dump(exclude_unset=True))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    if updated is None:
        raise _not_found(record_id)
    return _dump(updated)


@router.delete("/records/{record_id}")
async def delete_record(record_id: str, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    if not runtime.session.delete_record(record_id):
        raise _not_found(record_id)
    return {"deleted": record_id}


@router.delete("/records")
async def clear_records(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return {"deleted": runtime.session.clear_records()}


# === Dispatch ===

@router.post("/records/{record_id}/send")
async def send_record(record_id: str, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    record = await runtime.dispatcher.send_one(record_id)
    if record is None:
        raise _not_found(record_id)
    return _dump(record)


@router.post("/send-all")
async def send_all(
    status: StatusFilter = Query(default=StatusFilter.ALL, alias="filter"),
    search: str = "",
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    if runtime.dispatcher.busy:
        raise HTTPException(status_code=409, detail="Dispatch already running")
    summary = await runtime.dispatcher.send_all(RecordFilter(status=status, search=search))
    return {"sent": summary.sent, "failed": summary.failed, "total": summary.total}


# === Imports ===

@router.post("/import/erp")
async def import_erp(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    outcome = await runtime.pipeline.import_from_erp()
    if not outcome.ok:
        raise HTTPException(status_code=502, detail=outcome.error)
    return {
        "added": [_dump(r) for r in outcome.added],
        "duplicates": outcome.duplicates,
        "skipped": outcome.skipped,
    }


@router.post("/import/image")
async def import_image(request: Request, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Empty upload")
    mime_type = request.headers.get("content-type", "application/octet-stream")
    record = await runtime.pipeline.import_from_image(data, mime_type)
    if record is None:
        raise HTTPException(status_code=422, detail="IA falhou ao ler dados do boleto.")
    return _dump(record)


# === Monitor & stats ===

@router.get("/logs")
async def list_logs(runtime: Runtime = Depends(get_runtime)) -> list[dict[str, Any]]:
    return [entry.to_dict() for entry in runtime.session.log.entries]


@router.get("/stats")
async def stats(
    recent: int = Query(default=5, ge=0, le=50), runtime: Runtime = Depends(get_runtime)
) -> dict[str, Any]:
    records = runtime.session.records
    return {
        **compute_stats(records).to_dict(),
        "recent": [_dump(r) for r in recent_records(records, limit=recent)],
    }


# === Configuration ===

@router.get("/config/gateway")
async def get_gateway_config(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.session.gateway_config.model_dump(mode="json")


@router.put("/config/gateway")
async def put_gateway_config(
    config: GatewayConfig, runtime: Runtime = Depends(get_runtime)
) -> dict[str, Any]:
    runtime.session.replace_gateway_config(config)
    return config.model_dump(mode="json")


@router.get("/config/erp")
async def get_erp_config(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.session.erp_config.model_dump(mode="json")


@router.put("/config/erp")
async def put_erp_config(config: ErpConfig, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    runtime.session.replace_erp_config(config)
    return config.model_dump(mode="json")


@router.post("/catalog/sync")
async def sync_catalog(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    updated = await runtime.sync_catalog()
    if updated is None:
        detail = runtime.session.log.entries[0].message if len(runtime.session.log) else None
        raise HTTPException(status_code=502, detail=detail)
    return {
        "channels": [c.model_dump() for c in updated.channels],
        "agents": [a.model_dump() for a in updated.agents],
    }


# === Backup ===

@router.get("/backup")
async def export_backup(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.session.export_backup()


@router.post("/backup")
async def restore_backup(request: Request, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    try:
        restored = runtime.session.restore_backup(await request.body())
    except ParseError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"restored": restored}
