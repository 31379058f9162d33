"""download 族后端适配器。

所有下载后端都返回同一形状的 data：

    {
        "url": 原始链接,
        "title": 标题或 None,
        "thumbnail": 封面或 None,
        "media": [{"type": ..., "url": ..., "quality": ...}, ...],
        "meta": {后端特有的补充信息},
    }

media 为空视为失败，交给下一个后端。media 项的 url 总是可直接访问的链接；
y2mate 只能给出转换 key，此时该项用 key 字段代替 url。
"""

import asyncio
import re
from typing import Any, Dict, List, Optional

import yt_dlp

from gateway_core.backends.base import HttpBackend, Outcome
from gateway_core.domain.exceptions import BackendError
from gateway_core.domain.models import OperationRequest, OperationResult


YOUTUBE_ID_RE = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?|shorts)/|.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})"
)


def extract_video_id(url: str) -> Optional[str]:
    match = YOUTUBE_ID_RE.search(url or "")
    return match.group(1) if match else None


def media_item(kind: str, url: Optional[str], quality: Optional[str] = None) -> Optional[Dict[str, Any]]:
    if not url:
        return None
    item: Dict[str, Any] = {"type": kind, "url": url}
    if quality:
        item["quality"] = quality
    return item


class DownloadBackend(HttpBackend):
    def media_result(
        self,
        url: str,
        media: List[Optional[Dict[str, Any]]],
        title: Optional[str] = None,
        thumbnail: Optional[str] = None,
        **meta: Any,
    ) -> OperationResult:
        items = [m for m in media if m]
        if not items:
            raise BackendError(code="NO_MEDIA", message=f"{self.name}: no downloadable media in response")
        return self.result(url=url, title=title, thumbnail=thumbnail, media=items, meta=meta)


class TikwmBackend(DownloadBackend):
    name = "tikwm"
    headers = {
        "Accept": "application/json, text/javascript, */*; q=0.01",
        "Origin": "https://www.tikwm.com",
        "Referer": "https://www.tikwm.com/",
        "X-Requested-With": "XMLHttpRequest",
    }

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        body = await self._request_json("POST", self.base_url, params={"url": url, "hd": 1})
        raw = body.get("data") if isinstance(body, dict) else None
        if not raw:
            return self.fail(str((body or {}).get("msg") or "unexpected response from tikwm"))

        media: List[Optional[Dict[str, Any]]] = []
        # 图集：有 images 且没有任何视频尺寸
        if raw.get("images") and not (raw.get("size") or raw.get("wm_size") or raw.get("hd_size")):
            media.extend(media_item("photo", img) for img in raw["images"])
        else:
            media.append(media_item("watermark", raw.get("wmplay")))
            media.append(media_item("nowatermark", raw.get("play")))
            media.append(media_item("nowatermark_hd", raw.get("hdplay"), quality="hd"))

        author = raw.get("author") or {}
        music = raw.get("music_info") or {}
        return self.media_result(
            url,
            media,
            title=raw.get("title"),
            thumbnail=raw.get("cover"),
            id=raw.get("id"),
            region=raw.get("region"),
            duration=raw.get("duration"),
            created_at=raw.get("create_time"),
            author={
                "id": author.get("id"),
                "username": author.get("unique_id"),
                "nickname": author.get("nickname"),
                "avatar": author.get("avatar"),
            } if author else None,
            music={
                "title": music.get("title"),
                "author": music.get("author"),
                "url": raw.get("music") or music.get("play"),
            } if music else None,
            stats={
                "views": raw.get("play_count", 0),
                "likes": raw.get("digg_count", 0),
                "comments": raw.get("comment_count", 0),
                "shares": raw.get("share_count", 0),
                "downloads": raw.get("download_count", 0),
            },
        )


class CobaltBackend(DownloadBackend):
    """cobalt 支持多平台，作为各下载族的兜底。"""

    name = "cobalt"
    headers = {"Accept": "application/json"}

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        payload = {"url": url, "vQuality": "1080", "filenamePattern": "basic", "isAudioOnly": False}
        data = await self._request_json("POST", self.base_url, json=payload)
        if not isinstance(data, dict):
            raise BackendError(code="MALFORMED_RESPONSE", message="cobalt: unexpected payload")
        if data.get("status") == "error":
            return self.fail(str(data.get("text") or "cobalt reported an error"))
        media: List[Optional[Dict[str, Any]]] = [media_item("video", data.get("url"))]
        for entry in data.get("picker") or []:
            media.append(media_item(entry.get("type") or "photo", entry.get("url")))
        return self.media_result(url, media, status=data.get("status"))


class Y2mateBackend(DownloadBackend):
    name = "y2mate"

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        data = await self._request_json(
            "POST",
            self.base_url,
            data={"k_query": url, "k_page": "home", "hl": "en", "q_auto": 0},
        )
        if not isinstance(data, dict) or data.get("status") != "ok":
            return self.fail("y2mate did not return status ok")
        media: List[Optional[Dict[str, Any]]] = []
        for kind, group in (data.get("links") or {}).items():
            for entry in (group or {}).values():
                # y2mate 只给出转换 key，真正的链接需要二次请求
                if isinstance(entry, dict) and entry.get("k"):
                    media.append({"type": kind, "key": entry["k"], "quality": entry.get("q")})
        video_id = data.get("vid") or extract_video_id(url)
        return self.media_result(
            url,
            media,
            title=data.get("title"),
            thumbnail=f"https://i.ytimg.com/vi/{video_id}/maxresdefault.jpg" if video_id else None,
            video_id=video_id,
            note="media entries carry y2mate conversion keys instead of urls",
        )


class YoutubeOEmbedBackend(DownloadBackend):
    """最后的兜底：只拿到元数据，没有直链。"""

    name = "youtube-oembed"

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        video_id = extract_video_id(url)
        if not video_id:
            return self.fail("not a YouTube URL")
        watch_url = f"https://www.youtube.com/watch?v={video_id}"
        data = await self._request_json("GET", self.base_url, params={"url": watch_url, "format": "json"})
        return self.media_result(
            url,
            [media_item("page", watch_url)],
            title=data.get("title"),
            thumbnail=f"https://i.ytimg.com/vi/{video_id}/maxresdefault.jpg",
            video_id=video_id,
            author=data.get("author_name"),
            note="metadata only; use an external downloader with this URL",
        )


class DownloadgramBackend(DownloadBackend):
    name = "downloadgram"

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        data = await self._request_json("GET", self.base_url, params={"url": url})
        if not isinstance(data, dict) or not data.get("download_url"):
            return self.fail("downloadgram returned no download_url")
        return self.media_result(
            url,
            [media_item("media", data["download_url"])],
            title=data.get("title") or "Instagram Media",
            thumbnail=data.get("thumbnail"),
        )


class SaveigBackend(DownloadBackend):
    name = "saveig"
    LINK_RE = re.compile(r'href=\\?"(https?://[^"\\]+)\\?"[^>]*title=\\?"Download')

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        data = await self._request_json("POST", self.base_url, data={"q": url, "t": "media", "lang": "en"})
        html = data.get("data") if isinstance(data, dict) else None
        if not html:
            return self.fail("saveig returned no data")
        links = self.LINK_RE.findall(html)
        return self.media_result(url, [media_item("media", link) for link in links], title="Instagram Media")


class GetfvidBackend(DownloadBackend):
    name = "getfvid"
    SD_RE = re.compile(r"sd:\s*'([^']+)'")
    HD_RE = re.compile(r"hd:\s*'([^']+)'")

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        resp = await self._request("POST", self.base_url, data={"url": url})
        html = resp.text
        sd = self.SD_RE.search(html)
        hd = self.HD_RE.search(html)
        return self.media_result(
            url,
            [
                media_item("video", hd.group(1) if hd else None, quality="hd"),
                media_item("video", sd.group(1) if sd else None, quality="sd"),
            ],
            title="Facebook Video",
        )


class YtDlpBackend(DownloadBackend):
    """通过 yt-dlp 的 extract_info 拿到元数据与直链，不下载文件。

    yt-dlp 是同步库，放到线程里执行；编排器的超时只能放弃等待，无法中断线程，
    因此同时把超时传给 socket_timeout。
    """

    name = "yt-dlp"

    def _extract(self, url: str) -> Dict[str, Any]:
        options = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "noplaylist": True,
            "socket_timeout": self.timeout,
        }
        try:
            with yt_dlp.YoutubeDL(options) as ydl:
                info = ydl.extract_info(url, download=False)
        except yt_dlp.utils.DownloadError as exc:
            raise BackendError(code="EXTRACT_FAILED", message=f"yt-dlp: {exc}")
        if not isinstance(info, dict):
            raise BackendError(code="MALFORMED_RESPONSE", message="yt-dlp returned no info")
        return info

    @staticmethod
    def _best(formats: List[Dict[str, Any]], video: bool) -> Optional[Dict[str, Any]]:
        def has(fmt: Dict[str, Any], key: str) -> bool:
            return fmt.get(key) not in (None, "none")

        if video:
            candidates = [f for f in formats if has(f, "vcodec") and has(f, "acodec") and f.get("url")]
            rank = "tbr"
        else:
            candidates = [f for f in formats if not has(f, "vcodec") and has(f, "acodec") and f.get("url")]
            rank = "abr"
        return max(candidates, key=lambda f: f.get(rank) or 0, default=None)

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        if not extract_video_id(url):
            return self.fail("not a YouTube URL")
        info = await asyncio.to_thread(self._extract, url)
        formats = [f for f in info.get("formats") or [] if isinstance(f, dict)]
        video = self._best(formats, video=True)
        audio = self._best(formats, video=False)
        return self.media_result(
            url,
            [
                media_item("video", video and video["url"], quality=video and video.get("format_note")),
                media_item("audio", audio and audio["url"], quality=audio and audio.get("abr") and f"{audio['abr']:g}kbps"),
            ],
            title=info.get("title"),
            thumbnail=info.get("thumbnail"),
            video_id=info.get("id"),
            author=info.get("uploader"),
            channel=info.get("channel_url"),
            duration=info.get("duration"),
            views=info.get("view_count"),
            upload_date=info.get("upload_date"),
        )
