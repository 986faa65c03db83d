# nexa/bot.py
from typing import Optional
from urllib.parse import quote

from nexa.config import BRAT_API_URL
from nexa.schemas import Message, new_id

BOT_ID = "nexa-bot"
BOT_NAME = "NEXA BOT"
BOT_AVATAR = "https://api.dicebear.com/7.x/bottts/svg?seed=Nexa"
BRAT_PREFIX = ".Brat "
REPLY_DELAY_MS = 500


def reply_for(message: Message) -> Optional[Message]:
    """
    '.Brat <문구>' 명령이면 이미지 생성 링크가 담긴 봇 메시지를 만든다.
    명령이 아니거나 문구가 비어 있으면 None.
    """
    text = message.text or ""
    if message.role == "bot" or not text.startswith(BRAT_PREFIX):
        return None

    query = text[len(BRAT_PREFIX):].strip()
    if not query:
        return None

    return Message(
        id=new_id("bot-"),
        userId=BOT_ID,
        userName=BOT_NAME,
        userAvatar=BOT_AVATAR,
        text=f'Generated result for: "{query}"',
        imageUrl=f"{BRAT_API_URL}?text={quote(query, safe='')}",
        timestamp=message.timestamp + REPLY_DELAY_MS,
        role="bot",
    )
