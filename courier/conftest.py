"""全局 pytest 配置 -- 环境隔离 + 临时数据目录 fixture"""

import os
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """清除宿主机上的 COURIER_* 配置，避免测试读到真实数据目录"""
    for key in list(os.environ):
        if key.startswith("COURIER_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")


@pytest.fixture
def tmp_data_dir(tmp_path: Path) -> Path:
    """提供临时数据目录（本地库 + 远端库 + blob）"""
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
