"""search.* 族后端：网页搜索、YouTube 搜索、动漫与电影检索。

网页类上游没有 API，只能解析 HTML（BeautifulSoup，html.parser）。
"""

import json
import re
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, unquote, urlparse

from bs4 import BeautifulSoup

from gateway_core.backends.base import HttpBackend, Outcome
from gateway_core.domain.exceptions import BackendError
from gateway_core.domain.models import OperationRequest


MAX_WEB_RESULTS = 10
YT_INITIAL_DATA_RE = re.compile(r"var ytInitialData\s*=\s*(\{.+?\});", re.S)


def _limit(request: OperationRequest, default: int = MAX_WEB_RESULTS) -> int:
    try:
        value = int(request.get("limit") or default)
    except (TypeError, ValueError):
        return default
    return max(1, min(value, 50))


class GoogleSearchBackend(HttpBackend):
    name = "google"

    async def attempt(self, request: OperationRequest) -> Outcome:
        query = request.get("query")
        resp = await self._request("GET", self.base_url, params={"q": query, "hl": "en"})
        soup = BeautifulSoup(resp.text, "html.parser")
        results: List[Dict[str, Any]] = []
        for block in soup.select("div.g"):
            title = block.find("h3")
            link = block.find("a", href=True)
            if not title or not link:
                continue
            snippet = block.select_one(".VwiC3b")
            results.append({
                "title": title.get_text(strip=True),
                "link": link["href"],
                "description": snippet.get_text(" ", strip=True) if snippet else "",
            })
        if not results:
            return self.fail("no parsable results (layout changed or blocked)")
        return self.result(query=query, results=results[:_limit(request)])


class DuckDuckGoSearchBackend(HttpBackend):
    name = "duckduckgo"

    async def attempt(self, request: OperationRequest) -> Outcome:
        query = request.get("query")
        resp = await self._request("POST", self.base_url, data={"q": query})
        soup = BeautifulSoup(resp.text, "html.parser")
        results: List[Dict[str, Any]] = []
        for block in soup.select("div.result"):
            anchor = block.select_one("a.result__a")
            if not anchor or not anchor.get("href"):
                continue
            snippet = block.select_one(".result__snippet")
            results.append({
                "title": anchor.get_text(strip=True),
                "link": self._unwrap(anchor["href"]),
                "description": snippet.get_text(" ", strip=True) if snippet else "",
            })
        if not results:
            return self.fail("no results")
        return self.result(query=query, results=results[:_limit(request)])

    @staticmethod
    def _unwrap(href: str) -> str:
        # DDG 的链接形如 //duckduckgo.com/l/?uddg=<encoded>
        parsed = urlparse(href)
        target = parse_qs(parsed.query).get("uddg")
        return unquote(target[0]) if target else href


class YoutubeWebSearchBackend(HttpBackend):
    name = "youtube-web"

    async def attempt(self, request: OperationRequest) -> Outcome:
        query = request.get("query")
        resp = await self._request("GET", self.base_url, params={"search_query": query})
        match = YT_INITIAL_DATA_RE.search(resp.text)
        if not match:
            raise BackendError(code="MALFORMED_RESPONSE", message="youtube-web: ytInitialData not found")
        try:
            initial = json.loads(match.group(1))
            sections = (
                initial["contents"]["twoColumnSearchResultsRenderer"]["primaryContents"]
                ["sectionListRenderer"]["contents"]
            )
        except (KeyError, TypeError, json.JSONDecodeError):
            raise BackendError(code="MALFORMED_RESPONSE", message="youtube-web: unexpected ytInitialData layout")

        limit = _limit(request)
        videos: List[Dict[str, Any]] = []
        for section in sections:
            for item in (section.get("itemSectionRenderer") or {}).get("contents", []):
                video = item.get("videoRenderer")
                if video and len(videos) < limit:
                    videos.append(self._parse_video(video))
        if not videos:
            return self.fail("no videos found")
        return self.result(query=query, count=len(videos), results=videos)

    @staticmethod
    def _parse_video(video: Dict[str, Any]) -> Dict[str, Any]:
        video_id = video.get("videoId")
        thumbs = (video.get("thumbnail") or {}).get("thumbnails") or [{}]
        owner_runs = (video.get("ownerText") or {}).get("runs") or [{}]
        title_runs = (video.get("title") or {}).get("runs") or [{}]
        return {
            "video_id": video_id,
            "title": title_runs[0].get("text"),
            "url": f"https://www.youtube.com/watch?v={video_id}",
            "thumbnail": thumbs[-1].get("url"),
            "duration": (video.get("lengthText") or {}).get("simpleText") or "Live",
            "views": (video.get("viewCountText") or {}).get("simpleText"),
            "published": (video.get("publishedTimeText") or {}).get("simpleText"),
            "channel": owner_runs[0].get("text"),
        }


class JikanAnimeBackend(HttpBackend):
    name = "jikan"

    async def attempt(self, request: OperationRequest) -> Outcome:
        query = request.get("query")
        data = await self._request_json("GET", f"{self.base_url}/anime", params={"q": query, "limit": _limit(request)})
        items = (data or {}).get("data") if isinstance(data, dict) else None
        if not items:
            return self.fail("no anime found")
        results = [
            {
                "id": a.get("mal_id"),
                "title": a.get("title"),
                "english_title": a.get("title_english"),
                "episodes": a.get("episodes"),
                "score": a.get("score"),
                "status": a.get("status"),
                "synopsis": a.get("synopsis"),
                "image": ((a.get("images") or {}).get("jpg") or {}).get("large_image_url"),
                "url": a.get("url"),
                "year": a.get("year"),
                "rating": a.get("rating"),
            }
            for a in items
        ]
        return self.result(query=query, count=len(results), results=results)


class OmdbMovieBackend(HttpBackend):
    name = "omdb"
    max_details = 5

    def __init__(self, timeout: float = 15.0, base_url: Optional[str] = None, api_key: str = "trilogy"):
        super().__init__(timeout=timeout, base_url=base_url)
        self._api_key = api_key

    async def attempt(self, request: OperationRequest) -> Outcome:
        query = request.get("query")
        data = await self._request_json("GET", self.base_url, params={"s": query, "apikey": self._api_key})
        if not isinstance(data, dict) or data.get("Response") != "True":
            return self.fail(str((data or {}).get("Error") or "movie not found"))
        results = []
        # 逐条顺序查询详情，避免并发打满免费 key 的配额
        for movie in (data.get("Search") or [])[: self.max_details]:
            details = await self._request_json(
                "GET", self.base_url, params={"i": movie.get("imdbID"), "apikey": self._api_key}
            )
            results.append({
                "title": details.get("Title"),
                "year": details.get("Year"),
                "rated": details.get("Rated"),
                "runtime": details.get("Runtime"),
                "genre": details.get("Genre"),
                "director": details.get("Director"),
                "actors": details.get("Actors"),
                "plot": details.get("Plot"),
                "poster": details.get("Poster"),
                "imdb_rating": details.get("imdbRating"),
                "imdb_id": details.get("imdbID"),
            })
        return self.result(query=query, count=len(results), results=results)
