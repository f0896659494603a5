"""Web server settings."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    """Settings of the HTTP process; business settings live in commerce.config."""

    secret_key: str
    host: str
    port: int
    debug: bool
    project_root: Path

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    @classmethod
    def load(cls) -> "ServerConfig":
        """Build from environment variables and make sure the data directory exists."""

        project_root = Path(__file__).resolve().parent
        config = cls(
            secret_key=os.environ.get("SECRET_KEY", "dev_secret"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8000")),
            debug=os.environ.get("FLASK_DEBUG", "").lower() in {"1", "true", "yes"},
            project_root=project_root,
        )
        config.data_dir.mkdir(parents=True, exist_ok=True)

        # settings.json holds the business settings; seed it with defaults once
        if not config.settings_file.exists():
            default_settings = {
                "CURRENCY": "INR",
                "FREE_DELIVERY_THRESHOLD": "500",
                "DELIVERY_FEE": "50",
                "STORE_TIMEZONE": "Asia/Kolkata",
                "RAZORPAY_KEY_ID": "",
                "RAZORPAY_KEY_SECRET": "",
            }
            config.settings_file.write_text(
                json.dumps(default_settings, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            logger.info("created default settings file %s", config.settings_file)

        return config
