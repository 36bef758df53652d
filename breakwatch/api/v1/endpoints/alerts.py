# breakwatch/api/v1/endpoints/alerts.py

from fastapi import APIRouter, Depends, HTTPException

from breakwatch.dependencies import ServiceContainer, get_container
from breakwatch.schemas.api import AlertOut, AlertsResponse, MarkReadResponse

router = APIRouter()


@router.get("", response_model=AlertsResponse)
async def list_alerts(services: ServiceContainer = Depends(get_container)):
    alerts = await services.alerts.list()
    return AlertsResponse(
        alerts=[AlertOut.from_alert(a) for a in alerts],
        unread_count=sum(1 for a in alerts if not a.read),
    )


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(services: ServiceContainer = Depends(get_container)):
    return MarkReadResponse(updated=await services.alerts.mark_all_read())


@router.post("/{alert_id}/read", response_model=MarkReadResponse)
async def mark_read(alert_id: str, services: ServiceContainer = Depends(get_container)):
    if not await services.alerts.mark_read(alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return MarkReadResponse(updated=1)
