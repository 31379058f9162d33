"""上游后端集成层。

该包下的模块负责：
- 定义后端策略抽象接口 (base)。
- 维护后端配置与各操作族的尝试顺序 (registry)。
- 提供各上游的具体实现 (chat、download、lyrics、search、tools)。
"""

from typing import Callable, Dict, List

from gateway_core.backends.base import BackendStrategy, HttpBackend
from gateway_core.backends.chat import AirforceChat, BlackboxChat, DeepInfraChat, HuggingFaceChat, PollinationsImage
from gateway_core.backends.download import (
    CobaltBackend,
    DownloadgramBackend,
    GetfvidBackend,
    SaveigBackend,
    TikwmBackend,
    Y2mateBackend,
    YoutubeOEmbedBackend,
    YtDlpBackend,
)
from gateway_core.backends.lyrics import GeniusBackend, LrclibBackend, LyricsOvhBackend
from gateway_core.backends.registry import get_backend_config, resolve_family_order
from gateway_core.backends.search import (
    DuckDuckGoSearchBackend,
    GoogleSearchBackend,
    JikanAnimeBackend,
    OmdbMovieBackend,
    YoutubeWebSearchBackend,
)
from gateway_core.backends.tools import IsgdBackend, QrCodeBackend, TinyUrlBackend, WttrWeatherBackend
from gateway_core.config.settings import settings as default_settings


BACKEND_CLASSES: Dict[str, type] = {
    cls.name: cls
    for cls in (
        AirforceChat,
        BlackboxChat,
        DeepInfraChat,
        HuggingFaceChat,
        PollinationsImage,
        TikwmBackend,
        YtDlpBackend,
        CobaltBackend,
        Y2mateBackend,
        YoutubeOEmbedBackend,
        DownloadgramBackend,
        SaveigBackend,
        GetfvidBackend,
        LrclibBackend,
        LyricsOvhBackend,
        GeniusBackend,
        GoogleSearchBackend,
        DuckDuckGoSearchBackend,
        YoutubeWebSearchBackend,
        JikanAnimeBackend,
        OmdbMovieBackend,
        WttrWeatherBackend,
        TinyUrlBackend,
        IsgdBackend,
        QrCodeBackend,
    )
}

# 需要凭据的后端：name -> 从 settings 取额外构造参数
_CREDENTIALS: Dict[str, Callable[[object], dict]] = {
    "huggingface": lambda cfg: {"token": getattr(cfg, "huggingface_token", None)},
    "genius": lambda cfg: {"token": getattr(cfg, "genius_token", None)},
    "omdb": lambda cfg: {"api_key": getattr(cfg, "omdb_api_key", "trilogy")},
}


def create_backend(name: str, cfg=None) -> BackendStrategy:
    """根据名称创建后端实例；超时优先取 settings.backend_timeouts，其次取注册表默认值。"""

    cfg = cfg or default_settings
    backend_cfg = get_backend_config(name)
    overrides = getattr(cfg, "backend_timeouts", None) or {}
    timeout = overrides.get(backend_cfg.name) or backend_cfg.timeout or cfg.http_timeout
    extra = _CREDENTIALS.get(backend_cfg.name, lambda _: {})(cfg)
    return BACKEND_CLASSES[backend_cfg.name](timeout=float(timeout), base_url=backend_cfg.base_url, **extra)


def build_strategies(cfg=None) -> Dict[str, List[BackendStrategy]]:
    """构造 family -> 有序策略列表，供 FallbackOrchestrator 使用。"""

    cfg = cfg or default_settings
    order = resolve_family_order(getattr(cfg, "family_order", None))
    return {family: [create_backend(name, cfg) for name in names] for family, names in order.items()}


__all__ = ["BackendStrategy", "HttpBackend", "build_strategies", "create_backend"]
