# nexa/schemas.py
import hashlib
import secrets
import string
import time
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_id(prefix: str = "") -> str:
    """9자리 랜덤 id (클라이언트 생성 opaque string)"""
    return prefix + "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))


def now_ms() -> int:
    return int(time.time() * 1000)


def user_id_for(email: str, role: str = "user") -> str:
    """email 기반 고정 id (admin-xxxx / u-xxxx)"""
    digest = hashlib.sha256(email.strip().lower().encode()).hexdigest()[:12]
    return f"{'admin' if role == 'admin' else 'u'}-{digest}"


def default_avatar(seed: str) -> str:
    return f"https://api.dicebear.com/7.x/identicon/svg?seed={seed}"


# ---------- wire models (camelCase 그대로 사용) ----------
class User(BaseModel):
    id: str
    name: str
    avatar: str = ""
    role: Literal["user", "admin"] = "user"
    email: str = ""


class Message(BaseModel):
    id: str = Field(default_factory=new_id)
    userId: str
    userName: str
    userAvatar: str = ""
    text: str = ""
    imageUrl: Optional[str] = None
    stickerUrl: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)
    role: Literal["user", "admin", "bot"] = "user"

    @model_validator(mode="after")
    def _has_content(self):
        if not self.text.strip() and not self.stickerUrl and not self.imageUrl:
            raise ValueError("message needs text, stickerUrl or imageUrl")
        return self


class Ticket(BaseModel):
    id: str = Field(default_factory=new_id)
    userId: str
    userName: str
    subject: str
    status: Literal["open", "closed"] = "open"
    timestamp: int = Field(default_factory=now_ms)

    @field_validator("subject")
    @classmethod
    def _subject_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("subject must not be blank")
        return v


class Suggestion(BaseModel):
    id: str = Field(default_factory=new_id)
    userId: str
    userName: str
    userAvatar: str = ""
    content: str
    timestamp: int = Field(default_factory=now_ms)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content must not be blank")
        return v


class Database(BaseModel):
    """로컬 스냅샷 (nexa_global_db 키에 JSON 한 덩어리로 저장)"""
    messages: List[Message] = Field(default_factory=list)
    tickets: List[Ticket] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)
    favoriteStickers: List[str] = Field(default_factory=list)
    lastReset: datetime = Field(default_factory=lambda: datetime.now().astimezone())


class Credentials(BaseModel):
    email: str
    password: str = ""


# ---------- collection 메타 ----------
# name -> (model, broadcast event type, 최신순 정렬 여부)
COLLECTIONS = {
    "messages": (Message, "NEW_MESSAGE", False),
    "tickets": (Ticket, "NEW_TICKET", True),
    "suggestions": (Suggestion, "NEW_SUGGESTION", True),
}


def sort_items(collection: str, items: list) -> list:
    _, _, newest_first = COLLECTIONS[collection]
    return sorted(items, key=lambda i: i.timestamp, reverse=newest_first)
