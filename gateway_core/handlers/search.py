"""检索端点：歌词、网页、YouTube、动漫、电影。"""

from typing import Any, Dict

from gateway_core.handlers.base import HandlerContext, family_handler, resolve_family


async def lyrics(ctx: HandlerContext) -> Dict[str, Any]:
    song = ctx.require("song", "title", "q", example="/search/lyrics?song=Blinding Lights&artist=The Weeknd")
    return await resolve_family(ctx, "lookup.lyrics", song=song, artist=ctx.param("artist"))


google = family_handler(
    "search.google",
    ("q", "query"),
    example="/search/google?q=python tutorial",
    limit="limit",
)

youtube = family_handler(
    "search.youtube",
    ("query", "q"),
    example="/search/youtube?query=lofi hip hop&limit=10",
    limit="limit",
)

anime = family_handler(
    "search.anime",
    ("q", "query"),
    example="/search/anime?q=Naruto",
    limit="limit",
)

movie = family_handler(
    "search.movie",
    ("q", "query"),
    example="/search/movie?q=Inception",
)
