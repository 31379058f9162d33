"""统一的请求与结果数据模型。

本模块定义了网关内部在不同上游后端之间共享的标准数据结构：

- OperationRequest: 交给后端策略的不可变输入。
- OperationResult: 后端策略成功后的统一结果，与具体后端无关。
- StrategyFailure: 单个策略失败的记录（策略名 + 原因）。
- ConversationTurn: 对话历史中的一条 {role, content}。
- RouteBinding / LoadReport: 路由注册表的绑定与加载报告。

所有后端适配器都只依赖这些模型，并负责在各自上游的 JSON 与这些模型之间做转换。
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Tuple


DEFAULT_CONVERSATION_KEY = "default"

# 对话消息角色
Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ConversationTurn:
    """对话历史中的一条消息。"""

    role: Role
    content: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class OperationRequest:
    """一次操作的输入。

    - params: 已校验的命名参数（text/url/query/song ...），构造后只读。
    - conversation_key: 对话历史的归属键，缺省为 "default"。
    - history: 仅 chat 族使用，调用前由 handler 从 ConversationStore 读取的快照。
    """

    params: Mapping[str, Any]
    conversation_key: str = DEFAULT_CONVERSATION_KEY
    history: Tuple[ConversationTurn, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(self, "conversation_key", self.conversation_key or DEFAULT_CONVERSATION_KEY)
        object.__setattr__(self, "history", tuple(self.history))

    def get(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)


@dataclass
class OperationResult:
    """一次成功调用的统一结果。

    - backend: 产生该结果的策略名。
    - data: 按操作族约定的数据（回复文本、媒体链接、歌词等），结构不随后端变化。
    """

    backend: str
    data: Dict[str, Any]
    success: bool = True

    def to_payload(self) -> Dict[str, Any]:
        return {"success": self.success, "backend": self.backend, "data": self.data}


@dataclass(frozen=True)
class StrategyFailure:
    """单个策略的失败记录，可由策略直接返回，也由编排器在捕获异常后生成。"""

    strategy: str
    reason: str


Handler = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True)
class RouteBinding:
    """一个 URL 路径与其 handler 的绑定。"""

    path: str
    handler: Handler
    unit: str
    target: str
    methods: Tuple[str, ...] = ("GET", "POST")


@dataclass
class LoadFailure:
    unit: str
    reason: str


@dataclass
class LoadReport:
    """RouteRegistry.load_from 的结果。"""

    loaded: int = 0
    failed: List[LoadFailure] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loaded": self.loaded,
            "failed": [{"unit": f.unit, "reason": f.reason} for f in self.failed],
            "paths": list(self.paths),
        }


def failure_reason(exc: BaseException) -> str:
    """把异常转换成简短的失败原因文本。"""

    message: Optional[str] = getattr(exc, "message", None) or str(exc)
    return message or exc.__class__.__name__
