"""维护路由

POST /api/maintenance/sweep: 立即执行一轮过期清理（手动清理）。
GET /api/maintenance/stats: 最近一轮清理结果 + 累计统计 + 本地副本数。
"""

from fastapi import APIRouter, Depends, Request

from ..deps import get_coordinator, get_local_group, get_scheduler

router = APIRouter()


@router.post("/api/maintenance/sweep")
async def run_sweep(scheduler=Depends(get_scheduler)):
    report = await scheduler.sweep()
    return {**report.model_dump(mode="json"), "deleted": report.deleted}


@router.get("/api/maintenance/stats")
async def get_stats(
    request: Request,
    scheduler=Depends(get_scheduler),
    coordinator=Depends(get_coordinator),
    local_group=Depends(get_local_group),
):
    last = scheduler.last_report
    consumer = getattr(request.app.state, "change_consumer", None)
    return {
        "device_id": coordinator.device_id,
        "last_sweep": last.model_dump(mode="json") if last else None,
        "totals": scheduler.totals,
        "local_records": await local_group.local_store.count(),
        "grace_timers": len(coordinator.pending_grace_timers),
        "sync": (
            {
                "processed": consumer.processed,
                "duplicates": consumer.duplicates,
                "failures": consumer.failures,
                "pending_retries": len(consumer.pending_retries),
            }
            if consumer
            else None
        ),
    }
