"""CLI 入口模块 -- python -m courier.core <command>

支持的命令：
  prune-local [--days N]  执行一次本地保留清理
  stats                   输出本地副本数量
"""

import asyncio
import sys
from datetime import UTC, datetime, timedelta

from .config import (
    get_device_identity,
    get_local_db_path,
    get_media_cache_dir,
    load_lifecycle_config,
)


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m courier.core <command>")
        print("命令:")
        print("  prune-local [--days N]  执行一次本地保留清理")
        print("  stats                   输出本地副本数量")
        sys.exit(1)

    command = sys.argv[1]

    if command == "prune-local":
        days = load_lifecycle_config().local_retention_days
        if len(sys.argv) >= 4 and sys.argv[2] == "--days":
            try:
                days = int(sys.argv[3])
            except ValueError:
                print(f"无效天数: {sys.argv[3]}")
                sys.exit(1)
        asyncio.run(prune_local(days))
    elif command == "stats":
        asyncio.run(local_stats())
    else:
        print(f"未知命令: {command}")
        print("可用命令: prune-local, stats")
        sys.exit(1)


async def prune_local(days: int) -> None:
    """执行本地保留清理"""
    from .store import create_local_store

    device_id, _ = get_device_identity()
    db_path = get_local_db_path()
    print(f"数据库路径: {db_path}")
    print(f"保留天数: {days}")

    group = await create_local_store(db_path, get_media_cache_dir(), device_id)
    try:
        removed = await group.local_store.prune(datetime.now(UTC) - timedelta(days=days))
        print(f"清理完成，删除 {removed} 条本地副本")
    finally:
        await group.close()


async def local_stats() -> None:
    """输出本地副本数量"""
    from .store import create_local_store

    device_id, _ = get_device_identity()
    group = await create_local_store(get_local_db_path(), get_media_cache_dir(), device_id)
    try:
        count = await group.local_store.count()
        print(f"设备 {device_id}: {count} 条本地副本")
    finally:
        await group.close()


if __name__ == "__main__":
    main()
