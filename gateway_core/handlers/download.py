"""媒体下载端点：每个平台一个操作族，返回统一的 media 列表。"""

from gateway_core.handlers.base import family_handler


tiktok = family_handler(
    "download.tiktok",
    ("url",),
    example="/download/tiktok?url=https://www.tiktok.com/@user/video/123",
    target="url",
)

youtube = family_handler(
    "download.youtube",
    ("url",),
    example="/download/youtube?url=https://youtube.com/watch?v=dQw4w9WgXcQ",
    target="url",
)

instagram = family_handler(
    "download.instagram",
    ("url",),
    example="/download/instagram?url=https://www.instagram.com/p/...",
    target="url",
)

facebook = family_handler(
    "download.facebook",
    ("url",),
    example="/download/facebook?url=https://www.facebook.com/...",
    target="url",
)
