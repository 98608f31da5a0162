"""
Роутер для истории обслуживания
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from loomcare.core.dependencies import get_store
from loomcare.models import ErrorResponse, MaintenanceRecordCreate
from loomcare.services import reports
from loomcare.services.repository import MaintenanceRepository
from loomcare.services.storage import DocumentStore
from loomcare.utils.helpers import utcnow

router = APIRouter()


@router.get("/maintenance-history", summary="История обслуживания, новые записи первыми")
async def list_history(
    machine_id: Optional[str] = Query(None, alias="machineId"),
    store: DocumentStore = Depends(get_store),
):
    records = MaintenanceRepository(store.load()).list_history(machine_id)
    return [record.to_wire() for record in records]


@router.get("/maintenance-history/export", summary="Экспорт истории в CSV")
async def export_history(
    machine_id: Optional[str] = Query(None, alias="machineId"),
    store: DocumentStore = Depends(get_store),
):
    content = reports.export_history_csv(store.load(), machine_id)
    filename = f"maintenance-history-{utcnow().strftime('%Y%m%d')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/maintenance-history",
    responses={404: {"model": ErrorResponse}},
    summary="Добавление записи в историю",
)
async def add_record(data: MaintenanceRecordCreate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        record = MaintenanceRepository(document).add_record(data)
    return {"success": True, "record": record.to_wire()}
