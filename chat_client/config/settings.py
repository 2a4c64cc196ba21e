"""配置管理模块。

支持从初始化参数、环境变量、.env 以及 config.yaml 加载配置，优先级依次递减。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class ChatSettings(BaseSettings):
    """会话客户端配置。"""

    # ---- 连接 ----
    server_url: str = Field(default="ws://localhost:8080", description="后端 WebSocket 地址")
    chat_path: str = Field(default="/chat", description="对话端点路径")
    max_retry_attempts: int = Field(default=3, ge=0, le=20, description="断线后最多自动重连次数")
    retry_delay: float = Field(default=2.0, gt=0, description="每次重连前的固定等待时间（秒）")

    # ---- 持久化 ----
    storage_root: str = Field(default=".storage", description="存储根目录")
    history_key: str = Field(default="chatHistory", description="对话快照的存储键")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别，DEBUG 时记录每次持久化与被忽略的连接事件")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def chat_url(self) -> str:
        return self.server_url.rstrip("/") + self.chat_path

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("server_url must use ws:// or wss://")
        return v

    @field_validator("chat_path")
    @classmethod
    def validate_chat_path(cls, v: str) -> str:
        if not v.startswith("/"):
            return "/" + v
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log_level: {v}")
        return level

    @field_validator("history_key")
    @classmethod
    def validate_history_key(cls, v: str) -> str:
        if not v or any(sep in v for sep in ("/", "\\")):
            raise ValueError("history_key must be a plain file-safe name")
        return v

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = ChatSettings()
