"""后端与操作族配置。

本模块将“操作族”与“具体上游”解耦：

- 操作族（family）：handler 使用的统一名称，例如 "chat"、"download.tiktok"。
- 后端（backend）：某个具体的上游服务，例如 "lrclib"、"tikwm"。

handler 只关心操作族，按什么顺序尝试哪些上游由这里集中配置，
settings.family_order 可以按族覆盖顺序，settings.backend_timeouts 可以按后端覆盖超时。
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional


@dataclass
class BackendConfig:
    """单个上游后端的配置。"""

    name: str
    base_url: str
    timeout: Optional[float] = None  # None 表示使用 settings.http_timeout


BACKEND_REGISTRY: Mapping[str, BackendConfig] = {
    # chat
    "airforce": BackendConfig("airforce", "https://api.airforce/v1", timeout=30.0),
    "blackbox": BackendConfig("blackbox", "https://www.blackbox.ai/api", timeout=30.0),
    "deepinfra": BackendConfig("deepinfra", "https://api.deepinfra.com/v1/openai", timeout=30.0),
    "huggingface": BackendConfig(
        "huggingface",
        "https://api-inference.huggingface.co/models/mistralai/Mixtral-8x7B-Instruct-v0.1",
        timeout=45.0,
    ),
    # imagine
    "pollinations": BackendConfig("pollinations", "https://image.pollinations.ai/prompt"),
    # download
    "tikwm": BackendConfig("tikwm", "https://www.tikwm.com/api/"),
    "yt-dlp": BackendConfig("yt-dlp", "", timeout=30.0),  # 库调用，无固定地址
    "cobalt": BackendConfig("cobalt", "https://api.cobalt.tools/api/json", timeout=20.0),
    "y2mate": BackendConfig("y2mate", "https://www.y2mate.com/mates/analyzeV2/ajax"),
    "youtube-oembed": BackendConfig("youtube-oembed", "https://www.youtube.com/oembed", timeout=10.0),
    "downloadgram": BackendConfig("downloadgram", "https://api.downloadgram.com/media"),
    "saveig": BackendConfig("saveig", "https://v3.saveig.app/api/ajaxSearch"),
    "getfvid": BackendConfig("getfvid", "https://www.getfvid.com/downloader"),
    # lyrics
    "lrclib": BackendConfig("lrclib", "https://lrclib.net/api", timeout=10.0),
    "lyrics-ovh": BackendConfig("lyrics-ovh", "https://api.lyrics.ovh/v1", timeout=10.0),
    "genius": BackendConfig("genius", "https://api.genius.com", timeout=10.0),
    # search
    "google": BackendConfig("google", "https://www.google.com/search"),
    "duckduckgo": BackendConfig("duckduckgo", "https://html.duckduckgo.com/html/"),
    "youtube-web": BackendConfig("youtube-web", "https://www.youtube.com/results"),
    "jikan": BackendConfig("jikan", "https://api.jikan.moe/v4"),
    "omdb": BackendConfig("omdb", "http://www.omdbapi.com/"),
    # tools
    "wttr": BackendConfig("wttr", "https://wttr.in"),
    "tinyurl": BackendConfig("tinyurl", "https://tinyurl.com/api-create.php", timeout=10.0),
    "isgd": BackendConfig("isgd", "https://is.gd/create.php", timeout=10.0),
    "qrcode": BackendConfig("qrcode", "", timeout=10.0),  # 本地生成
}


# 每个操作族的默认尝试顺序：越靠前越优先（通常是功能最全或最稳定的上游）
FAMILY_ORDER: Mapping[str, List[str]] = {
    "chat": ["airforce", "blackbox", "deepinfra", "huggingface"],
    "imagine": ["pollinations"],
    "download.tiktok": ["tikwm", "cobalt"],
    "download.youtube": ["yt-dlp", "cobalt", "y2mate", "youtube-oembed"],
    "download.instagram": ["downloadgram", "saveig", "cobalt"],
    "download.facebook": ["getfvid", "cobalt"],
    "lookup.lyrics": ["lrclib", "lyrics-ovh", "genius"],
    "search.google": ["google", "duckduckgo"],
    "search.youtube": ["youtube-web"],
    "search.anime": ["jikan"],
    "search.movie": ["omdb"],
    "tools.weather": ["wttr"],
    "tools.shorturl": ["tinyurl", "isgd"],
    "tools.qrcode": ["qrcode"],
}


def get_backend_config(name: str) -> BackendConfig:
    """根据名称获取 BackendConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in BACKEND_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown backend: {name!r}")


def resolve_family_order(overrides: Optional[Mapping[str, List[str]]] = None) -> Dict[str, List[str]]:
    """合并默认顺序与配置覆盖，返回 family -> [backend name]。"""

    order = {family: list(names) for family, names in FAMILY_ORDER.items()}
    for family, names in (overrides or {}).items():
        for name in names:
            get_backend_config(name)
        order[family] = list(names)
    return order
