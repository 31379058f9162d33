from datetime import datetime, timezone
from typing import Any, Dict

from gateway_core.handlers.base import HandlerContext


async def hello(ctx: HandlerContext) -> Dict[str, Any]:
    return {
        "success": True,
        "message": f"Hello {ctx.param('name', default='World')}!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
