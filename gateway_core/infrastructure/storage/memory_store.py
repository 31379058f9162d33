"""进程内的对话历史存储。

每个会话键对应一段按时间顺序排列的 user/assistant 消息序列：

- append 是唯一的写操作，一次写入一对消息后按 FIFO 裁剪到 max_entries 条；
- 写操作按键串行化（每个键一把 asyncio.Lock），读操作不加锁；
- 存储的序列是不可变 tuple，写入时整体替换，因此 read 拿到的永远是一致的快照。

不做持久化，进程重启后历史即丢失。
"""

import asyncio
import time
from typing import Callable, Dict, Optional, Tuple

from gateway_core.config.settings import settings
from gateway_core.domain.conversation import ConversationStore
from gateway_core.domain.models import ConversationTurn
from gateway_core.infrastructure.logging.logger import logger


class InMemoryConversationStore(ConversationStore):
    def __init__(
        self,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        size = max_entries if max_entries is not None else settings.max_history_entries
        if size < 2 or size % 2:
            raise ValueError(f"max_entries must be a positive even number, got {size}")
        self._max_entries = size
        self._clock = clock
        self._entries: Dict[str, Tuple[ConversationTurn, ...]] = {}
        self._touched: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._closed = False

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def append(self, key: str, user_turn: str, assistant_turn: str) -> None:
        """追加一轮对话（user 在前，assistant 在后），并裁剪到上限。"""

        if self._closed:
            raise RuntimeError("conversation store is closed")
        async with self._lock_for(key):
            current = self._entries.get(key, ())
            updated = current + (
                ConversationTurn(role="user", content=user_turn),
                ConversationTurn(role="assistant", content=assistant_turn),
            )
            if len(updated) > self._max_entries:
                updated = updated[-self._max_entries:]
            self._entries[key] = updated
            self._touched[key] = self._clock()

    async def read(self, key: str) -> Tuple[ConversationTurn, ...]:
        return self._entries.get(key, ())

    async def clear(self, key: str) -> None:
        async with self._lock_for(key):
            self._entries.pop(key, None)
            self._touched.pop(key, None)
        self._drop_idle_lock(key)

    def _drop_idle_lock(self, key: str) -> None:
        # 仍有数据或有协程在等锁时保留
        lock = self._locks.get(key)
        if lock is not None and not lock.locked() and key not in self._entries:
            self._locks.pop(key, None)

    async def evict_idle(self, max_idle: float) -> int:
        """清理超过 max_idle 秒未写入的会话，返回清理数量。"""

        now = self._clock()
        evicted = 0
        for key in [k for k, ts in list(self._touched.items()) if now - ts > max_idle]:
            async with self._lock_for(key):
                # 等锁期间可能有新的 append
                ts = self._touched.get(key)
                if ts is None or now - ts <= max_idle:
                    continue
                self._entries.pop(key, None)
                self._touched.pop(key, None)
                evicted += 1
            self._drop_idle_lock(key)
        if evicted:
            logger.info(
                "Evicted idle conversations",
                extra={"extra": {"count": evicted, "max_idle": max_idle}},
            )
        return evicted

    def keys(self) -> Tuple[str, ...]:
        return tuple(sorted(self._entries))

    async def close(self) -> None:
        self._closed = True
        self._entries.clear()
        self._touched.clear()
        self._locks.clear()
