"""配置管理模块。

支持从 .env、config.yaml 以及环境变量（前缀 GATEWAY_）加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_ROUTES_FILE = PACKAGE_ROOT / "config" / "routes.yaml"


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("GATEWAY_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        PACKAGE_ROOT.parent / "config.yaml",
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


class Settings(BaseSettings):
    """网关配置。"""

    # ---- 服务信息 ----
    name: str = Field(default="Ladybug API", description="服务名称")
    version: str = Field(default="1.0.0", description="服务版本")
    creator: str = Field(default="Ntando Mods", description="信封中的 creator 字段")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4000, ge=1, le=65535)
    debug: bool = Field(default=False, description="开发模式：500 响应中附带异常信息")

    # ---- 后端调用 ----
    http_timeout: float = Field(default=15.0, gt=0, description="单个后端默认超时（秒）")
    overall_timeout: float = Field(
        default=60.0,
        ge=0,
        description="一次 resolve 的总时长上限（秒），0 表示不限制",
    )
    backend_timeouts: Dict[str, float] = Field(
        default_factory=dict,
        description="按后端名覆盖超时，例如 {airforce: 30}",
    )
    family_order: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="按操作族覆盖策略顺序，例如 {chat: [deepinfra, airforce]}",
    )
    huggingface_token: Optional[str] = Field(default=None, description="Hugging Face Inference token")
    genius_token: Optional[str] = Field(default=None, description="Genius API token")
    omdb_api_key: str = Field(default="trilogy", description="OMDb API key")

    # ---- 对话历史 ----
    max_history_entries: int = Field(default=20, ge=2, le=200, description="每个会话保留的最大消息数")
    conversation_idle_ttl: float = Field(default=0.0, ge=0, description="空闲多少秒后清理会话，0 表示不清理")
    eviction_interval: float = Field(default=300.0, gt=0, description="空闲清理任务的执行间隔（秒）")

    # ---- 路由与日志 ----
    routes_file: str = Field(default=str(DEFAULT_ROUTES_FILE), description="声明式路由表")
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("max_history_entries")
    @classmethod
    def validate_history_size(cls, v: int) -> int:
        if v % 2:
            raise ValueError("max_history_entries must be even (user/assistant pairs)")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.upper()

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

    def public_view(self) -> Dict[str, Any]:
        """/api/settings 使用的公开字段（不含任何凭据）。"""

        return {
            "name": self.name,
            "version": self.version,
            "creator": self.creator,
            "http_timeout": self.http_timeout,
            "overall_timeout": self.overall_timeout,
            "max_history_entries": self.max_history_entries,
            "family_order": dict(self.family_order),
        }


settings = Settings()
