from typing import Optional, List
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nexa import schemas
from .models import ChatUser, ChatMessage, SupportTicket, Suggestion

__all__ = [
    "get_user_by_email", "upsert_user", "update_profile",
    "save_message", "get_recent_messages", "delete_message",
    "save_ticket", "get_tickets", "update_ticket_status", "delete_ticket",
    "save_suggestion", "get_suggestions", "delete_suggestion",
]


async def _commit(session: AsyncSession, obj=None):
    try:
        await session.commit()
        if obj is not None:
            await session.refresh(obj)
    except SQLAlchemyError:
        await session.rollback()
        raise


async def _delete_by_id(session: AsyncSession, model, item_id: str) -> bool:
    obj = await session.get(model, item_id)
    if obj is None:
        return False
    await session.delete(obj)
    await _commit(session)
    return True


# ===== users =====
async def get_user_by_email(session: AsyncSession, email: str) -> Optional[ChatUser]:
    res = await session.execute(select(ChatUser).where(ChatUser.email == email))
    return res.scalar_one_or_none()


async def upsert_user(
    session: AsyncSession,
    user_id: str,
    email: str,
    name: str,
    avatar: str = "",
    role: str = "user",
) -> ChatUser:
    """
    email 기준으로 ChatUser 생성, 이미 있으면 role/id 만 갱신 (이름/아바타는 유지)
    id 는 role 에서 파생되므로 role 이 바뀌면 id 도 새 값으로 바꾼다.
    """
    user = await get_user_by_email(session, email)
    if user is None:
        user = ChatUser(id=user_id, email=email, name=name, avatar=avatar, role=role)
        session.add(user)
    else:
        if user.id != user_id:
            user.id = user_id
        user.role = role
    await _commit(session, user)
    return user


async def update_profile(
    session: AsyncSession,
    user_id: str,
    name: Optional[str] = None,
    avatar: Optional[str] = None,
) -> Optional[ChatUser]:
    user = await session.get(ChatUser, user_id)
    if user is None:
        return None
    if name is not None:
        user.name = name
    if avatar is not None:
        user.avatar = avatar
    await _commit(session, user)
    return user


# ===== messages =====
async def save_message(session: AsyncSession, msg: schemas.Message) -> ChatMessage:
    """
    같은 id 가 있으면 덮어쓴다 (last write wins by id)
    """
    row = ChatMessage(
        id=msg.id,
        user_id=msg.userId,
        user_name=msg.userName,
        user_avatar=msg.userAvatar,
        text=msg.text,
        image_url=msg.imageUrl,
        sticker_url=msg.stickerUrl,
        timestamp=msg.timestamp,
        role=msg.role,
    )
    row = await session.merge(row)
    await _commit(session)
    return row


async def get_recent_messages(session: AsyncSession, limit: int = 50) -> List[ChatMessage]:
    """
    최신 limit 건을 가져와 timestamp 오름차순으로 반환
    """
    stmt = (
        select(ChatMessage)
        .order_by(desc(ChatMessage.timestamp), desc(ChatMessage.id))
        .limit(limit)
    )
    res = await session.execute(stmt)
    rows = list(res.scalars().all())
    rows.reverse()
    return rows


async def delete_message(session: AsyncSession, message_id: str) -> bool:
    return await _delete_by_id(session, ChatMessage, message_id)


# ===== tickets =====
async def save_ticket(session: AsyncSession, ticket: schemas.Ticket) -> SupportTicket:
    row = SupportTicket(
        id=ticket.id,
        user_id=ticket.userId,
        user_name=ticket.userName,
        subject=ticket.subject,
        status=ticket.status,
        timestamp=ticket.timestamp,
    )
    row = await session.merge(row)
    await _commit(session)
    return row


async def get_tickets(session: AsyncSession, user_id: Optional[str] = None) -> List[SupportTicket]:
    stmt = select(SupportTicket).order_by(desc(SupportTicket.timestamp))
    if user_id:
        stmt = stmt.where(SupportTicket.user_id == user_id)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def update_ticket_status(session: AsyncSession, ticket_id: str, status: str) -> bool:
    ticket = await session.get(SupportTicket, ticket_id)
    if ticket is None:
        return False
    ticket.status = status
    await _commit(session)
    return True


async def delete_ticket(session: AsyncSession, ticket_id: str) -> bool:
    return await _delete_by_id(session, SupportTicket, ticket_id)


# ===== suggestions =====
async def save_suggestion(session: AsyncSession, suggestion: schemas.Suggestion) -> Suggestion:
    row = Suggestion(
        id=suggestion.id,
        user_id=suggestion.userId,
        user_name=suggestion.userName,
        user_avatar=suggestion.userAvatar,
        content=suggestion.content,
        timestamp=suggestion.timestamp,
    )
    row = await session.merge(row)
    await _commit(session)
    return row


async def get_suggestions(session: AsyncSession) -> List[Suggestion]:
    res = await session.execute(select(Suggestion).order_by(desc(Suggestion.timestamp)))
    return list(res.scalars().all())


async def delete_suggestion(session: AsyncSession, suggestion_id: str) -> bool:
    return await _delete_by_id(session, Suggestion, suggestion_id)
