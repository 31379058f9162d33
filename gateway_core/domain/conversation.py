from typing import Protocol, Sequence

from .models import ConversationTurn


class ConversationStore(Protocol):
    """按会话键保存的有界对话历史。

    append 是唯一的写入口；read 返回快照；clear 删除整个键。
    """

    async def append(self, key: str, user_turn: str, assistant_turn: str) -> None:
        ...

    async def read(self, key: str) -> Sequence[ConversationTurn]:
        ...

    async def clear(self, key: str) -> None:
        ...

    async def close(self) -> None:
        ...
