# nexa/sync/broadcast.py
import asyncio
import json
import logging
import uuid
import weakref
from typing import Callable, Dict, List, Optional

import redis.asyncio as aioredis

from nexa.config import REDIS_URL
from nexa.schemas import COLLECTIONS

logger = logging.getLogger(__name__)

CHANNEL_NAME = "nexa_chat_sync"

Handler = Callable[[dict], None]


def new_item_event(collection: str, item) -> dict:
    """{"type": "NEW_MESSAGE", "payload": {...}} 형태의 이벤트"""
    _, event_type, _ = COLLECTIONS[collection]
    return {"type": event_type, "payload": item.model_dump(exclude_none=True)}


class _Broadcaster:
    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe():
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def _dispatch(self, event: dict) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("broadcast handler failed for %s", event.get("type"))


# ---- 같은 이벤트 루프 안의 컨텍스트끼리 ----
# 약한 참조: 버려진 컨텍스트는 close() 없이도 등록이 풀린다
_channels: Dict[str, "weakref.WeakSet[LocalBroadcaster]"] = {}


class LocalBroadcaster(_Broadcaster):
    """
    In-process named channel. Each instance is one context; ``publish`` reaches
    every other open instance with the same name on a later loop iteration,
    never the publisher itself. ``close()`` leaves the channel immediately;
    an instance nobody references anymore drops out on its own.
    """

    def __init__(self, name: str = CHANNEL_NAME):
        super().__init__(name)
        _channels.setdefault(name, weakref.WeakSet()).add(self)

    async def publish(self, event: dict) -> None:
        data = json.dumps(event)
        loop = asyncio.get_running_loop()
        for peer in list(_channels.get(self.name, ())):
            if peer is not self:
                # 수신 측마다 별도 복사본
                loop.call_soon(peer._dispatch, json.loads(data))

    async def close(self) -> None:
        _channels.get(self.name, set()).discard(self)
        self._handlers.clear()


class RedisBroadcaster(_Broadcaster):
    """Redis pub/sub channel for contexts living in separate processes."""

    def __init__(self, name: str = CHANNEL_NAME, client: Optional[aioredis.Redis] = None, url: str = REDIS_URL):
        super().__init__(name)
        self.r = client if client is not None else aioredis.from_url(url, decode_responses=True)
        self.origin = uuid.uuid4().hex
        self._task: Optional[asyncio.Task] = None

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._listen())
        return super().subscribe(handler)

    async def publish(self, event: dict) -> None:
        await self.r.publish(self.name, json.dumps({**event, "origin": self.origin}))

    async def _listen(self) -> None:
        pubsub = self.r.pubsub()
        await pubsub.subscribe(self.name)
        try:
            async for msg in pubsub.listen():
                if msg.get("type") != "message":
                    continue
                try:
                    event = json.loads(msg["data"])
                except (TypeError, json.JSONDecodeError):
                    event = None
                if not isinstance(event, dict):
                    logger.warning("dropping malformed broadcast on %s", self.name)
                    continue
                if event.pop("origin", None) == self.origin:
                    continue
                self._dispatch(event)
        finally:
            await pubsub.unsubscribe(self.name)
            await pubsub.aclose()

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._handlers.clear()
        await self.r.aclose()


def make_broadcaster(name: str = CHANNEL_NAME):
    if REDIS_URL:
        return RedisBroadcaster(name)
    return LocalBroadcaster(name)
