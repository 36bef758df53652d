# breakwatch/api/v1/endpoints/stats.py

from dataclasses import asdict
from fastapi import APIRouter, Depends

from breakwatch.dependencies import ServiceContainer, get_container
from breakwatch.schemas.api import CallRecordOut, CumulativeStats, RecentStats, StatsResponse

router = APIRouter()


@router.get("", response_model=StatsResponse)
async def get_stats(services: ServiceContainer = Depends(get_container)):
    """
    Upstream pressure at a glance.
    `recent` is this instance only; `cumulative` and `snapshotDurable`
    aggregate every instance sharing the store.
    """
    recent = services.accounting.recent_stats()
    recent["last_60s_records"] = [CallRecordOut(**asdict(r)) for r in recent["last_60s_records"]]
    cumulative = await services.accounting.cumulative_stats()

    return StatsResponse(
        recent=RecentStats(**recent),
        cumulative=CumulativeStats(**asdict(cumulative)),
        pending=services.accounting.pending,
        snapshot=services.snapshots.stats(),
        snapshot_durable=await services.snapshots.durable_stats(),
        baselines=services.baselines.stats(),
        historical_cache=services.history.stats(),
    )
