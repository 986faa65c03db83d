# nexa/sync/store.py
"""
Local snapshot store.

The whole snapshot (messages, tickets, suggestions, favorite stickers and the
last retention sweep time) lives as one JSON blob under ``STORAGE_KEY``; the
logged-in user lives under ``SESSION_KEY``. Every context that shares the
key-value backend reads and writes the same blob, last writer wins.

``read()`` never mutates anything. The daily retention sweep is the separate
``apply_retention_policy()`` step, run once per sync tick.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import redis
from pydantic import ValidationError

from nexa.config import LOCAL_DB_PATH, REDIS_URL, RETENTION_HOUR
from nexa.schemas import Database, User

logger = logging.getLogger(__name__)

STORAGE_KEY = "nexa_global_db"
SESSION_KEY = "nexa_session"


# ---- key-value backends (get/set/delete of str values) ----
class MemoryKV:
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileKV:
    """One file per key inside ``directory``."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        # 임시 파일에 쓰고 교체 (반쯤 쓰인 파일 방지)
        tmp = self._path(key).with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(self._path(key))

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class RedisKV:
    def __init__(self, client: Optional[redis.Redis] = None, url: str = REDIS_URL):
        self.r = client if client is not None else redis.from_url(url, decode_responses=True)

    def get(self, key: str) -> Optional[str]:
        return self.r.get(key)

    def set(self, key: str, value: str) -> None:
        self.r.set(key, value)

    def delete(self, key: str) -> None:
        self.r.delete(key)


def make_kv():
    if REDIS_URL:
        return RedisKV(url=REDIS_URL)
    if LOCAL_DB_PATH:
        return FileKV(LOCAL_DB_PATH)
    return MemoryKV()


def _local(dt: datetime) -> datetime:
    # naive 값은 로컬 시간으로 간주
    return dt.astimezone()


class LocalStore:
    def __init__(
        self,
        kv=None,
        retention_hour: int = RETENTION_HOUR,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.kv = kv if kv is not None else make_kv()
        self.retention_hour = retention_hour
        self.clock = clock

    def _defaults(self) -> Database:
        return Database(lastReset=_local(self.clock()))

    # ---- snapshot ----
    def read(self) -> Database:
        raw = self.kv.get(STORAGE_KEY)
        if not raw:
            return self._defaults()
        try:
            return Database.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("corrupt local snapshot, using defaults: %s", e.errors()[0].get("msg"))
            return self._defaults()

    def write(self, **partial) -> Database:
        """Shallow-merge top-level keys into the persisted snapshot."""
        unknown = set(partial) - set(Database.model_fields)
        if unknown:
            raise KeyError(f"unknown snapshot keys: {sorted(unknown)}")
        current = self.read()
        updated = Database.model_validate({**dict(current), **partial})
        self.kv.set(STORAGE_KEY, updated.model_dump_json(exclude_none=True))
        return updated

    def upsert(self, collection: str, item) -> Database:
        """Append ``item`` to a collection, replacing any entry with the same id."""
        items = [i for i in getattr(self.read(), collection) if i.id != item.id]
        items.append(item)
        return self.write(**{collection: items})

    # ---- retention ----
    def reset_point(self, now: datetime) -> datetime:
        return _local(now).replace(hour=self.retention_hour, minute=0, second=0, microsecond=0)

    def apply_retention_policy(self, now: Optional[datetime] = None) -> bool:
        """
        Clear messages once a day: when ``now`` is at/after today's cutoff and
        the last sweep happened before it. Returns True if a sweep ran.
        """
        now = _local(now or self.clock())
        cutoff = self.reset_point(now)
        db = self.read()
        if now < cutoff or _local(db.lastReset) >= cutoff:
            return False

        logger.info("retention sweep at %s: clearing %d messages", now.isoformat(), len(db.messages))
        self.write(messages=[], lastReset=now)
        return True

    # ---- stickers ----
    def toggle_favorite_sticker(self, url: str) -> List[str]:
        favorites = list(self.read().favoriteStickers)
        if url in favorites:
            favorites = [s for s in favorites if s != url]
        else:
            favorites.append(url)
        self.write(favoriteStickers=favorites)
        return favorites

    # ---- session ----
    def save_session(self, user: User) -> None:
        self.kv.set(SESSION_KEY, user.model_dump_json())

    def load_session(self) -> Optional[User]:
        raw = self.kv.get(SESSION_KEY)
        if not raw:
            return None
        try:
            return User.model_validate_json(raw)
        except ValidationError:
            logger.warning("corrupt session, removing")
            self.kv.delete(SESSION_KEY)
            return None

    def clear_session(self) -> None:
        self.kv.delete(SESSION_KEY)

