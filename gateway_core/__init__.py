"""Gateway Core 顶层包。

该包提供多后端 API 聚合网关的核心实现，
包括配置加载、领域模型、后端适配、降级编排、
对话历史存储、声明式路由注册与 HTTP 入口等能力。
"""

from gateway_core.api.app import create_app

__all__ = ["create_app"]
