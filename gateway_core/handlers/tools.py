"""小工具端点：天气、短链接、二维码。"""

from typing import Any, Dict

from gateway_core.domain.exceptions import ValidationError
from gateway_core.handlers.base import HandlerContext, family_handler, resolve_family


weather = family_handler("tools.weather", ("city",), example="/tools/weather?city=London", target="city")

shorturl = family_handler(
    "tools.shorturl",
    ("url",),
    example="/tools/shorturl?url=https://www.example.com/very/long/url",
    target="url",
)

QRCODE_EXAMPLE = "/tools/qrcode?text=Hello World&size=500"


async def qrcode(ctx: HandlerContext) -> Dict[str, Any]:
    text = ctx.require("text", example=QRCODE_EXAMPLE)
    size = ctx.param("size")
    if size is not None:
        try:
            size = max(64, min(int(size), 2048))
        except ValueError:
            raise ValidationError(message="size must be an integer", example=QRCODE_EXAMPLE)
    return await resolve_family(
        ctx,
        "tools.qrcode",
        text=text,
        size=size,
        dark=ctx.param("dark"),
        light=ctx.param("light"),
    )
