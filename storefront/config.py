"""Storefront 應用設定模組。"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path


logger = logging.getLogger(__name__)


@dataclass
class StorefrontConfig:
    """封裝網站前台與管理端的設定值。"""

    secret_key: str
    admin_username: str
    admin_password: str
    project_root: Path

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    @property
    def admin_credentials_file(self) -> Path:
        return self.data_dir / "admin.json"

    @classmethod
    def load(cls, project_root: Path | None = None) -> "StorefrontConfig":
        """從環境變數建構設定，並確保 data 目錄存在。"""

        root = Path(project_root) if project_root else Path.cwd()
        admin_username = os.environ.get("STOREFRONT_ADMIN_USER", "admin")
        admin_password = os.environ.get("STOREFRONT_ADMIN_PASS", "")

        config = cls(
            secret_key=os.environ.get("SECRET_KEY", "dev_secret"),
            admin_username=admin_username,
            admin_password=admin_password,
            project_root=root,
        )
        config.data_dir.mkdir(parents=True, exist_ok=True)

        # admin.json 優先於環境變數
        if config.admin_credentials_file.exists():
            try:
                admin_data = json.loads(config.admin_credentials_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("讀取 admin.json 失敗: %s", exc)
            else:
                if isinstance(admin_data, dict):
                    config.admin_username = admin_data.get("username", admin_username)
                    config.admin_password = admin_data.get("password", admin_password)
                    logger.info("已從 %s 載入管理員帳密", config.admin_credentials_file)

        return config
