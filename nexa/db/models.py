from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Text, DateTime, BigInteger, func


class Base(DeclarativeBase):
    """Base class for ORM models."""
    pass


class ChatUser(Base):
    __tablename__ = "chat_users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    avatar: Mapped[str] = mapped_column(Text(), default="")
    role: Mapped[str] = mapped_column(String(10), default="user")   # 'user' | 'admin'
    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar or "",
            "role": self.role,
            "email": self.email,
        }


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    user_name: Mapped[str] = mapped_column(String(100))
    user_avatar: Mapped[str] = mapped_column(Text(), default="")
    text: Mapped[str] = mapped_column(Text(), default="")
    image_url: Mapped[str | None] = mapped_column(Text(), nullable=True)
    sticker_url: Mapped[str | None] = mapped_column(Text(), nullable=True)
    timestamp: Mapped[int] = mapped_column(BigInteger(), index=True)   # epoch millis
    role: Mapped[str] = mapped_column(String(10))     # 'user' | 'admin' | 'bot'

    def to_dict(self) -> dict:
        out = {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "userAvatar": self.user_avatar or "",
            "text": self.text or "",
            "timestamp": self.timestamp,
            "role": self.role,
        }
        if self.image_url:
            out["imageUrl"] = self.image_url
        if self.sticker_url:
            out["stickerUrl"] = self.sticker_url
        return out


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    user_name: Mapped[str] = mapped_column(String(100))
    subject: Mapped[str] = mapped_column(Text())
    status: Mapped[str] = mapped_column(String(10), default="open")   # 'open' | 'closed'
    timestamp: Mapped[int] = mapped_column(BigInteger(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "subject": self.subject,
            "status": self.status,
            "timestamp": self.timestamp,
        }


class Suggestion(Base):
    __tablename__ = "suggestions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    user_name: Mapped[str] = mapped_column(String(100))
    user_avatar: Mapped[str] = mapped_column(Text(), default="")
    content: Mapped[str] = mapped_column(Text())
    timestamp: Mapped[int] = mapped_column(BigInteger(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "userAvatar": self.user_avatar or "",
            "content": self.content,
            "timestamp": self.timestamp,
        }
