import pytest

from nexa import bot
from nexa.exceptions import SendBlockedError
from nexa.schemas import Message
from nexa.sync.guard import SendGuard


def msg(text, role="user"):
    return Message(id="m1", userId="u1", userName="Budi", text=text, timestamp=2000, role=role)


# ===== bot =====
def test_brat_command_builds_bot_reply():
    reply = bot.reply_for(msg(".Brat kopi & roti"))
    assert reply.role == "bot"
    assert reply.userId == bot.BOT_ID
    assert reply.userName == "NEXA BOT"
    assert reply.text == 'Generated result for: "kopi & roti"'
    assert reply.imageUrl.endswith("?text=kopi%20%26%20roti")
    assert reply.timestamp == 2500
    assert reply.id.startswith("bot-")


@pytest.mark.parametrize("text", ["hello", ".Brat    ", ".brat lower", "x .Brat inside"])
def test_no_reply_for_other_text(text):
    assert bot.reply_for(msg(text)) is None


def test_bot_does_not_answer_bots():
    assert bot.reply_for(msg(".Brat loop", role="bot")) is None


# ===== guard =====
class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_cooldown_between_sends():
    clock = Clock()
    guard = SendGuard(cooldown_seconds=1, clock=clock)
    guard.check()
    guard.record()

    with pytest.raises(SendBlockedError) as exc:
        guard.check()
    assert exc.value.reason == "cooldown"

    clock.now = 1.0
    guard.check()


def test_ban_after_limit_then_reset():
    clock = Clock()
    guard = SendGuard(limit=3, ban_seconds=300, cooldown_seconds=0, clock=clock)
    for _ in range(3):
        guard.check()
        guard.record()

    with pytest.raises(SendBlockedError) as exc:
        guard.check()
    assert exc.value.retry_after == 300

    clock.now = 299
    with pytest.raises(SendBlockedError):
        guard.check()

    clock.now = 300
    guard.check()
    assert guard.count == 0
