import json
from datetime import datetime, timedelta

import pytest

from nexa.schemas import Message, User
from nexa.sync.store import FileKV, LocalStore, MemoryKV, RedisKV, SESSION_KEY, STORAGE_KEY

TODAY = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
YESTERDAY_0800 = TODAY - timedelta(days=1) + timedelta(hours=8)
TODAY_0705 = TODAY + timedelta(hours=7, minutes=5)


def msg(mid, ts=100):
    return Message(id=mid, userId="u1", userName="Budi", text="hi", timestamp=ts)


def store_at(now, kv=None):
    return LocalStore(kv if kv is not None else MemoryKV(), clock=lambda: now)


def seed(store, last_reset, messages):
    store.kv.set(STORAGE_KEY, json.dumps({
        "messages": [m.model_dump(exclude_none=True) for m in messages],
        "lastReset": last_reset.isoformat(),
    }))


def test_read_defaults_without_persisting():
    store = store_at(TODAY_0705)
    db = store.read()
    assert db.messages == [] and db.tickets == [] and db.favoriteStickers == []
    assert store.kv.get(STORAGE_KEY) is None


def test_write_shallow_merges():
    store = store_at(TODAY_0705)
    store.write(messages=[msg("a")])
    store.write(favoriteStickers=["https://s.test/1.gif"])

    db = store.read()
    assert [m.id for m in db.messages] == ["a"]
    assert db.favoriteStickers == ["https://s.test/1.gif"]


def test_write_rejects_unknown_keys():
    store = store_at(TODAY_0705)
    with pytest.raises(KeyError):
        store.write(users={})


def test_upsert_replaces_same_id():
    store = store_at(TODAY_0705)
    store.upsert("messages", msg("a", 1))
    store.upsert("messages", msg("b", 2))
    store.upsert("messages", Message(id="a", userId="u1", userName="Budi", text="edited", timestamp=1))

    texts = {m.id: m.text for m in store.read().messages}
    assert texts == {"a": "edited", "b": "hi"}


def test_corrupt_snapshot_falls_back_to_defaults():
    store = store_at(TODAY_0705)
    store.kv.set(STORAGE_KEY, "{definitely not json")
    assert store.read().messages == []

    store.kv.set(STORAGE_KEY, json.dumps({"messages": [{"id": "x"}]}))
    assert store.read().messages == []


# ===== retention =====
def test_retention_clears_messages_after_cutoff():
    store = store_at(TODAY_0705)
    seed(store, YESTERDAY_0800, [msg("a")])

    # read 는 부수효과가 없다
    assert [m.id for m in store.read().messages] == ["a"]

    assert store.apply_retention_policy() is True
    db = store.read()
    assert db.messages == []
    assert db.lastReset >= store.reset_point(TODAY_0705)
    assert abs((db.lastReset - TODAY_0705.astimezone()).total_seconds()) < 1


def test_retention_runs_once_per_day():
    store = store_at(TODAY_0705)
    seed(store, YESTERDAY_0800, [msg("a")])
    assert store.apply_retention_policy() is True

    store.write(messages=[msg("b")])
    assert store.apply_retention_policy() is False
    assert [m.id for m in store.read().messages] == ["b"]


def test_no_retention_before_cutoff():
    now = TODAY + timedelta(hours=6, minutes=59)
    store = store_at(now)
    seed(store, YESTERDAY_0800, [msg("a")])
    assert store.apply_retention_policy() is False
    assert [m.id for m in store.read().messages] == ["a"]


def test_no_retention_when_already_reset_today():
    store = store_at(TODAY + timedelta(hours=12))
    seed(store, TODAY + timedelta(hours=7, minutes=1), [msg("a")])
    assert store.apply_retention_policy() is False


def test_retention_keeps_tickets_and_favorites():
    store = store_at(TODAY_0705)
    seed(store, YESTERDAY_0800, [msg("a")])
    store.write(favoriteStickers=["https://s.test/1.gif"])
    store.apply_retention_policy()
    assert store.read().favoriteStickers == ["https://s.test/1.gif"]


def test_custom_retention_hour():
    store = LocalStore(MemoryKV(), retention_hour=9, clock=lambda: TODAY_0705)
    seed(store, YESTERDAY_0800, [msg("a")])
    assert store.apply_retention_policy() is False
    assert store.apply_retention_policy(TODAY + timedelta(hours=9)) is True


# ===== stickers / session =====
def test_toggle_favorite_sticker():
    store = store_at(TODAY_0705)
    assert store.toggle_favorite_sticker("https://s.test/1.gif") == ["https://s.test/1.gif"]
    assert store.toggle_favorite_sticker("https://s.test/2.gif") == ["https://s.test/1.gif", "https://s.test/2.gif"]
    assert store.toggle_favorite_sticker("https://s.test/1.gif") == ["https://s.test/2.gif"]


def test_session_round_trip_and_clear():
    store = store_at(TODAY_0705)
    user = User(id="u-1", name="budi", email="budi@mail.com")
    store.save_session(user)
    assert store.load_session() == user
    store.clear_session()
    assert store.load_session() is None


def test_corrupt_session_is_removed():
    store = store_at(TODAY_0705)
    store.kv.set(SESSION_KEY, "{broken")
    assert store.load_session() is None
    assert store.kv.get(SESSION_KEY) is None


# ===== backends =====
def test_file_backend_is_shared_between_stores(tmp_path):
    tab_a = store_at(TODAY_0705, FileKV(tmp_path))
    tab_b = store_at(TODAY_0705, FileKV(tmp_path))

    tab_a.write(messages=[msg("a")])
    assert [m.id for m in tab_b.read().messages] == ["a"]

    # 마지막으로 쓴 쪽이 이긴다
    tab_b.write(messages=[msg("b")])
    assert [m.id for m in tab_a.read().messages] == ["b"]


class FakeRedis:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)


def test_redis_backend_uses_client():
    fake = FakeRedis()
    store = store_at(TODAY_0705, RedisKV(client=fake))
    store.write(messages=[msg("a")])
    assert STORAGE_KEY in fake.data
    assert [m.id for m in store.read().messages] == ["a"]
