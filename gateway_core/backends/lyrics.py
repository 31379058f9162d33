"""lookup.lyrics 族后端。

统一的 data 结构：title / artist / album / duration / lyrics / synced_lyrics / instrumental / url /
thumbnail / release_date，后端取不到的字段为 None。
lyrics.ovh 需要歌手名，genius 需要 token，条件不满足时直接返回 StrategyFailure。
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

from gateway_core.backends.base import HttpBackend, Outcome
from gateway_core.domain.models import OperationRequest, OperationResult


class LyricsBackend(HttpBackend):
    headers = {"User-Agent": "LyricsAPI/1.0"}

    def song_result(self, **song: Any) -> OperationResult:
        data: Dict[str, Any] = {
            "title": None,
            "artist": None,
            "album": None,
            "duration": None,
            "lyrics": None,
            "synced_lyrics": None,
            "instrumental": False,
            "url": None,
            "thumbnail": None,
            "release_date": None,
        }
        data.update(song)
        return self.result(**data)


class LrclibBackend(LyricsBackend):
    name = "lrclib"

    async def attempt(self, request: OperationRequest) -> Outcome:
        song = request.get("song")
        artist = request.get("artist")
        params = {"track_name": song}
        if artist:
            params["artist_name"] = artist
        results = await self._request_json("GET", f"{self.base_url}/search", params=params)
        if not isinstance(results, list) or not results:
            return self.fail("no lyrics found")
        hit = results[0]
        lyrics = hit.get("plainLyrics") or hit.get("syncedLyrics")
        if not lyrics and not hit.get("instrumental"):
            return self.fail("match has no lyrics")
        return self.song_result(
            title=hit.get("trackName") or hit.get("name") or song,
            artist=hit.get("artistName") or artist,
            album=hit.get("albumName"),
            duration=hit.get("duration"),
            lyrics=lyrics,
            synced_lyrics=hit.get("syncedLyrics"),
            instrumental=bool(hit.get("instrumental")),
        )


class LyricsOvhBackend(LyricsBackend):
    name = "lyrics-ovh"

    async def attempt(self, request: OperationRequest) -> Outcome:
        song = request.get("song")
        artist = request.get("artist")
        if not artist:
            return self.fail("artist name required for this source")
        data = await self._request_json("GET", f"{self.base_url}/{quote(artist, safe='')}/{quote(song, safe='')}")
        lyrics = (data or {}).get("lyrics") if isinstance(data, dict) else None
        if not lyrics:
            return self.fail("no lyrics found")
        return self.song_result(title=song, artist=artist, lyrics=lyrics.strip())


class GeniusBackend(LyricsBackend):
    """Genius 只提供元数据与页面链接，完整歌词需要抓取页面。"""

    name = "genius"

    def __init__(self, timeout: float = 10.0, base_url: Optional[str] = None, token: Optional[str] = None):
        super().__init__(timeout=timeout, base_url=base_url)
        self._token = token

    async def attempt(self, request: OperationRequest) -> Outcome:
        if not self._token:
            return self.fail("Genius API token not set")
        song = request.get("song")
        artist = request.get("artist")
        query = f"{song} {artist}" if artist else song
        data = await self._request_json(
            "GET",
            f"{self.base_url}/search",
            params={"q": query},
            headers={"Authorization": f"Bearer {self._token}"},
        )
        hits = ((data or {}).get("response") or {}).get("hits") or []
        if not hits:
            return self.fail("no lyrics found")
        hit = hits[0].get("result") or {}
        return self.song_result(
            title=hit.get("title"),
            artist=(hit.get("primary_artist") or {}).get("name"),
            album=(hit.get("album") or {}).get("name"),
            url=hit.get("url"),
            lyrics="Visit URL for full lyrics",
            thumbnail=hit.get("song_art_image_url"),
            release_date=hit.get("release_date_for_display"),
        )
