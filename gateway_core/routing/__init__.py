"""路由注册：声明式路由表 -> URL 路径绑定。"""

from gateway_core.routing.registry import RouteRegistry, iter_units, validate_handler

__all__ = ["RouteRegistry", "iter_units", "validate_handler"]
