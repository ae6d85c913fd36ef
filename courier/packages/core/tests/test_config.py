"""配置加载单元测试

验证环境变量映射、默认值与非法值回退。
"""

import pytest
from courier.core.config import (
    INLINE_RECORD_MAX_BYTES,
    LifecycleConfig,
    get_device_identity,
    get_local_db_path,
    get_remote_db_path,
    load_lifecycle_config,
)
from pydantic import ValidationError


class TestLifecycleConfig:
    """LifecycleConfig 数据模型"""

    def test_default_values(self):
        config = LifecycleConfig()
        assert config.grace_window_s == 30.0
        assert config.sweep_interval_s == 3600.0
        assert config.default_ttl_s == 7 * 24 * 3600.0
        assert config.local_retention_days == 30
        assert config.max_delete_attempts == 3
        assert config.blob_claim_lease_s == 300.0

    def test_sweep_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            LifecycleConfig(sweep_interval_s=0)

    def test_inline_limit_constant(self):
        assert INLINE_RECORD_MAX_BYTES == 900 * 1024


class TestLoadLifecycleConfig:
    """load_lifecycle_config 环境变量映射"""

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("COURIER_GRACE_WINDOW_S", "5")
        monkeypatch.setenv("COURIER_MAX_DELETE_ATTEMPTS", "7")
        monkeypatch.setenv("COURIER_BLOB_CLAIM_LEASE_S", "60")
        config = load_lifecycle_config()
        assert config.grace_window_s == 5.0
        assert config.max_delete_attempts == 7
        assert config.blob_claim_lease_s == 60.0

    def test_invalid_value_falls_back(self, monkeypatch: pytest.MonkeyPatch):
        """非法值回退默认值，不阻塞启动"""
        monkeypatch.setenv("COURIER_SWEEP_INTERVAL_S", "not-a-number")
        monkeypatch.setenv("COURIER_LOCAL_RETENTION_DAYS", "0")
        config = load_lifecycle_config()
        assert config.sweep_interval_s == 3600.0
        assert config.local_retention_days == 30

    def test_empty_value_ignored(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("COURIER_GRACE_WINDOW_S", "")
        assert load_lifecycle_config().grace_window_s == 30.0


class TestPaths:
    """数据目录与设备身份"""

    def test_paths_follow_data_dir(self, monkeypatch: pytest.MonkeyPatch, tmp_path):
        monkeypatch.setenv("COURIER_DATA_DIR", str(tmp_path))
        monkeypatch.delenv("COURIER_LOCAL_DB_PATH", raising=False)
        monkeypatch.delenv("COURIER_REMOTE_DB_PATH", raising=False)
        assert get_local_db_path() == str(tmp_path / "local" / "messages.db")
        assert get_remote_db_path() == str(tmp_path / "remote" / "documents.db")

    def test_device_identity(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("COURIER_DEVICE_ID", "phone")
        monkeypatch.setenv("COURIER_USER_ID", "bob")
        assert get_device_identity() == ("phone", "bob")
