# nexa/sync/loop.py
import asyncio
import logging
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from nexa import bot
from nexa.config import SYNC_INTERVAL
from nexa.exceptions import NexaError
from nexa.schemas import COLLECTIONS, sort_items
from nexa.sync.broadcast import new_item_event
from nexa.sync.guard import SendGuard
from nexa.sync.store import LocalStore

logger = logging.getLogger(__name__)


# ===== sources =====
class RemoteSource:
    """Authoritative collections come from the API; the local snapshot is only a read cache."""

    mode = "online"

    def __init__(self, client, store: Optional[LocalStore] = None):
        self.client = client
        self.store = store

    async def fetch(self, collection: str) -> list:
        fetchers = {
            "messages": self.client.get_messages,
            "tickets": self.client.get_tickets,
            "suggestions": self.client.get_suggestions,
        }
        items = await fetchers[collection]()
        if self.store is not None:
            self.store.write(**{collection: items})
        return items

    async def push(self, collection: str, item) -> list:
        senders = {
            "messages": self.client.send_message,
            "tickets": self.client.send_ticket,
            "suggestions": self.client.send_suggestion,
        }
        await senders[collection](item)
        # 봇 응답은 서버가 저장하고 다음 동기화 때 내려온다
        return []


class LocalSource:
    """Local-only mode: the snapshot itself is the source."""

    mode = "local"

    def __init__(self, store: LocalStore):
        self.store = store

    async def fetch(self, collection: str) -> list:
        return list(getattr(self.store.read(), collection))

    async def push(self, collection: str, item) -> list:
        self.store.upsert(collection, item)
        extra = []
        if collection == "messages":
            reply = bot.reply_for(item)
            if reply is not None:
                self.store.upsert(collection, reply)
                extra.append(reply)
        return extra


# ===== sync loop =====
class SyncLoop:
    """
    Keeps ``items`` (in-memory view state of one collection) in step with a
    source: wholesale replacement on every tick, broadcast events appended
    when their id is new, optimistic local appends on ``send``.
    """

    def __init__(
        self,
        source,
        store: LocalStore,
        broadcaster=None,
        *,
        collection: str = "messages",
        interval: float = SYNC_INTERVAL,
        guard: Optional[SendGuard] = None,
        on_change: Optional[Callable[[list], None]] = None,
    ):
        self.model, self.event_type, _ = COLLECTIONS[collection]
        self.source = source
        self.store = store
        self.broadcaster = broadcaster
        self.collection = collection
        self.interval = interval
        self.guard = guard
        self.on_change = on_change
        self.items: List = []
        self._pending: Dict[str, object] = {}
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe = broadcaster.subscribe(self.on_broadcast) if broadcaster else None

    def ids(self) -> List[str]:
        return [i.id for i in self.items]

    def _set(self, items: list) -> None:
        items = sort_items(self.collection, items)
        changed = items != self.items
        self.items = items
        if changed and self.on_change:
            self.on_change(self.items)

    def _append(self, item) -> bool:
        if item.id in self.ids():
            return False
        self._set([*self.items, item])
        return True

    # ---- reconciliation ----
    async def reconcile(self) -> list:
        fetched = await self.source.fetch(self.collection)
        merged = {i.id: i for i in fetched}
        # 아직 전송 중인 낙관적 항목은 유지
        for item_id, item in self._pending.items():
            merged.setdefault(item_id, item)
        self._set(list(merged.values()))
        return self.items

    async def tick(self) -> None:
        # 한 번의 실패로 주기 작업이 멈추면 안 된다 (CancelledError 는 통과)
        try:
            self.store.apply_retention_policy()
            await self.reconcile()
        except NexaError as e:
            logger.warning("SYNC_FAILED %s: %s", self.collection, e)
        except Exception:
            logger.exception("SYNC_FAILED %s", self.collection)

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ---- cross-context events ----
    def on_broadcast(self, event: dict) -> bool:
        if event.get("type") != self.event_type:
            return False
        try:
            item = self.model.model_validate(event.get("payload") or {})
        except ValidationError:
            logger.warning("ignoring malformed %s event", self.event_type)
            return False
        return self._append(item)

    # ---- user writes ----
    async def send(self, item):
        if self.guard is not None:
            self.guard.check()

        self._pending[item.id] = item
        self._append(item)
        if self.broadcaster is not None:
            await self.broadcaster.publish(new_item_event(self.collection, item))
        try:
            extra = await self.source.push(self.collection, item)
        finally:
            self._pending.pop(item.id, None)

        if self.guard is not None:
            self.guard.record()
        for reply in extra:
            self._append(reply)
            if self.broadcaster is not None:
                await self.broadcaster.publish(new_item_event(self.collection, reply))
        return item
