"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含本地库、远端文档库、blob 存储、磁盘空间。
"""

import shutil

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()

# 可用磁盘低于该值视为未就绪（本地副本写入会失败）
_MIN_FREE_DISK_MB = 100


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查

    检查项：
    1. local_db: 本地数据库连通性（发送路径的硬依赖）
    2. remote_db: 远端文档库连通性
    3. blob_store: blob 存储可达性
    4. disk_space_mb: 本地数据目录所在磁盘剩余空间
    """
    checks: dict = {}
    all_ok = True
    state = request.app.state

    # 1. 本地数据库
    try:
        cursor = await state.local_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["local_db"] = "ok"
    except Exception as e:
        checks["local_db"] = f"error: {e}"
        all_ok = False

    # 2. 远端文档库
    try:
        cursor = await state.document_store.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["remote_db"] = "ok"
    except Exception as e:
        checks["remote_db"] = f"error: {e}"
        all_ok = False

    # 3. blob 存储
    try:
        if await state.media_manager.blob_store.health_check():
            checks["blob_store"] = "ok"
        else:
            checks["blob_store"] = "unreachable"
            all_ok = False
    except Exception as e:
        log.warning("blob_health_check_error", error=str(e))
        checks["blob_store"] = "unreachable"
        all_ok = False

    # 4. 磁盘空间
    try:
        disk_usage = shutil.disk_usage(state.local_group.media_dir)
        disk_space_mb = disk_usage.free // (1024 * 1024)
        checks["disk_space_mb"] = disk_space_mb
        if disk_space_mb < _MIN_FREE_DISK_MB:
            all_ok = False
    except OSError:
        checks["disk_space_mb"] = 0
        all_ok = False

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "checks": checks,
        },
    )
