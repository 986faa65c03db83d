# nexa/routers/api_handler.py
import json, hmac, logging, re, time
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import InterfaceError, OperationalError

from nexa import bot, config, schemas
from nexa.db import crud
from nexa.db.session import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_AVATAR_BYTES = 2 * 1024 * 1024
AVATAR_DATA_RE = re.compile(r"^data:image/(png|jpeg);base64,")


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


# ===== 관리자 판별 (서버 측에서만) =====
def admin_configured() -> bool:
    return bool(config.ADMIN_EMAIL and config.ADMIN_PASSWORD)


def is_admin_login(email: str, password: str) -> bool:
    if not admin_configured():
        return False
    return hmac.compare_digest(email.lower().encode(), config.ADMIN_EMAIL.lower().encode()) \
        and hmac.compare_digest(password.encode(), config.ADMIN_PASSWORD.encode())


def admin_user_id() -> str | None:
    if not admin_configured():
        return None
    return schemas.user_id_for(config.ADMIN_EMAIL, "admin")


def require_admin(payload: dict) -> None:
    if not admin_configured():
        raise ApiError(503, "SERVICE UNAVAILABLE: ADMIN NOT CONFIGURED")
    auth = payload.get("auth") or {}
    if not isinstance(auth, dict):
        raise ApiError(403, "RESTRICTED ACCESS")
    if not is_admin_login(str(auth.get("email") or ""), str(auth.get("password") or "")):
        raise ApiError(403, "RESTRICTED ACCESS")


def require_id(payload: dict) -> str:
    item_id = payload.get("id")
    if not item_id or not isinstance(item_id, str):
        raise ApiError(400, "MISSING ID")
    return item_id


def validate_avatar(avatar: str) -> None:
    if avatar.startswith("data:"):
        if not AVATAR_DATA_RE.match(avatar):
            raise ApiError(400, "ONLY JPG/PNG AVATARS ARE SUPPORTED")
        # base64 4글자 = 3바이트
        encoded = avatar.split(",", 1)[1]
        if len(encoded) * 3 // 4 > MAX_AVATAR_BYTES:
            raise ApiError(400, "AVATAR EXCEEDS 2MB LIMIT")
    elif avatar and not avatar.startswith(("http://", "https://")):
        raise ApiError(400, "INVALID AVATAR URL")


def status_payload() -> dict:
    return {"status": "active", "timestamp": int(time.time() * 1000), "version": config.NEXA_VERSION}


# ===== action 핸들러 =====
async def action_ping(payload: dict):
    return status_payload()


async def action_auth_config(payload: dict):
    # 민감하지 않은 메타데이터만
    return {"version": config.NEXA_VERSION, "network": config.NEXA_NETWORK}


async def action_auth(payload: dict):
    creds = schemas.Credentials.model_validate(payload)
    email = creds.email.strip().lower()
    if not EMAIL_RE.match(email):
        raise ApiError(400, "INVALID EMAIL")

    if admin_configured() and email == config.ADMIN_EMAIL.lower():
        if not is_admin_login(email, creds.password):
            raise ApiError(403, "IDENTITY REJECTED")
        role = "admin"
    else:
        role = "user"

    name = email.split("@", 1)[0]
    async with get_session() as s:
        user = await crud.upsert_user(
            s,
            user_id=schemas.user_id_for(email, role),
            email=email,
            name=name,
            avatar=schemas.default_avatar(name),
            role=role,
        )
    logger.info("auth ok uid=%s role=%s", user.id, user.role)
    return {"user": user.to_dict()}


async def action_update_profile(payload: dict):
    data = payload.get("user")
    if not isinstance(data, dict) or not data.get("id"):
        raise ApiError(400, "MISSING USER")
    name = data.get("name")
    avatar = data.get("avatar")
    if name is not None and not str(name).strip():
        raise ApiError(400, "NAME MUST NOT BE BLANK")
    if avatar is not None:
        validate_avatar(str(avatar))

    async with get_session() as s:
        user = await crud.update_profile(s, str(data["id"]), name=name, avatar=avatar)
    if user is None:
        raise ApiError(404, "UNKNOWN USER")
    return {"user": user.to_dict()}


async def action_get_messages(payload: dict):
    try:
        limit = int(payload.get("limit") or config.MESSAGE_LIMIT)
    except (TypeError, ValueError):
        raise ApiError(400, "INVALID LIMIT")
    limit = max(1, min(limit, config.MESSAGE_LIMIT_MAX))
    async with get_session() as s:
        rows = await crud.get_recent_messages(s, limit=limit)
    return [r.to_dict() for r in rows]


async def action_send_message(payload: dict):
    msg = schemas.Message.model_validate(payload.get("message") or {})
    # role 은 표시용 힌트일 뿐, 서버에서 확정한다
    msg.role = "admin" if msg.userId == admin_user_id() else "user"
    reply = bot.reply_for(msg)
    async with get_session() as s:
        await crud.save_message(s, msg)
        if reply is not None:
            await crud.save_message(s, reply)
    if config.NEXA_DEBUG:
        logger.info("DBG :: saved message id=%s uid=%s bot=%s", msg.id, msg.userId, bool(reply))
    return {"success": True}


async def action_delete_message(payload: dict):
    require_admin(payload)
    item_id = require_id(payload)
    async with get_session() as s:
        if not await crud.delete_message(s, item_id):
            raise ApiError(404, "UNKNOWN MESSAGE")
    return {"success": True}


async def action_get_tickets(payload: dict):
    user_id = payload.get("userId")
    async with get_session() as s:
        rows = await crud.get_tickets(s, user_id=str(user_id) if user_id else None)
    return [r.to_dict() for r in rows]


async def action_send_ticket(payload: dict):
    ticket = schemas.Ticket.model_validate(payload.get("ticket") or {})
    ticket.status = "open"
    async with get_session() as s:
        await crud.save_ticket(s, ticket)
    logger.info("ticket #%s created by %s", ticket.id, ticket.userId)
    return {"success": True}


async def action_close_ticket(payload: dict):
    require_admin(payload)
    item_id = require_id(payload)
    async with get_session() as s:
        if not await crud.update_ticket_status(s, item_id, "closed"):
            raise ApiError(404, "UNKNOWN TICKET")
    return {"success": True}


async def action_delete_ticket(payload: dict):
    require_admin(payload)
    item_id = require_id(payload)
    async with get_session() as s:
        if not await crud.delete_ticket(s, item_id):
            raise ApiError(404, "UNKNOWN TICKET")
    return {"success": True}


async def action_get_suggestions(payload: dict):
    async with get_session() as s:
        rows = await crud.get_suggestions(s)
    return [r.to_dict() for r in rows]


async def action_send_suggestion(payload: dict):
    suggestion = schemas.Suggestion.model_validate(payload.get("suggestion") or {})
    if suggestion.userId == admin_user_id():
        raise ApiError(403, "ADMINS CANNOT SUBMIT SUGGESTIONS")
    async with get_session() as s:
        await crud.save_suggestion(s, suggestion)
    return {"success": True}


async def action_delete_suggestion(payload: dict):
    require_admin(payload)
    item_id = require_id(payload)
    async with get_session() as s:
        if not await crud.delete_suggestion(s, item_id):
            raise ApiError(404, "UNKNOWN SUGGESTION")
    return {"success": True}


ACTIONS: Dict[str, Callable[[dict], Awaitable[Any]]] = {
    "ping": action_ping,
    "auth_config": action_auth_config,
    "auth": action_auth,
    "update_profile": action_update_profile,
    "get_messages": action_get_messages,
    "send_message": action_send_message,
    "delete_message": action_delete_message,
    "get_tickets": action_get_tickets,
    "send_ticket": action_send_ticket,
    "close_ticket": action_close_ticket,
    "delete_ticket": action_delete_ticket,
    "get_suggestions": action_get_suggestions,
    "send_suggestion": action_send_suggestion,
    "delete_suggestion": action_delete_suggestion,
}


# ===== 요청 파싱 =====
async def read_body(request: Request) -> dict:
    if request.method != "POST":
        return {}
    raw = await request.body()
    if config.NEXA_DEBUG:
        logger.info("DBG :: raw body %s", raw.decode("utf-8", errors="replace"))
    if not raw:
        return {}
    try:
        body = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ApiError(400, "MALFORMED JSON")
    if not isinstance(body, dict):
        raise ApiError(400, "MALFORMED JSON")
    return body


def split_action(request: Request, body: dict) -> tuple[str | None, dict]:
    query = dict(request.query_params)
    action = body.get("action") or query.pop("action", None)
    query.pop("t", None)   # cache-buster
    inner = body.get("payload")
    if isinstance(inner, dict):
        payload = {**query, **inner}
    else:
        payload = {**query, **{k: v for k, v in body.items() if k != "action"}}
    return action, payload


# ===== 엔드포인트 =====
@router.api_route("", methods=["GET", "POST"])
async def api_entry(request: Request):
    try:
        body = await read_body(request)
        action, payload = split_action(request, body)

        if not action:
            return JSONResponse(status_payload())

        handler = ACTIONS.get(action)
        if handler is None:
            raise ApiError(403, "RESTRICTED ACCESS")

        if config.NEXA_DEBUG:
            logger.info("DBG :: action=%s keys=%s", action, sorted(payload))
        return JSONResponse(await handler(payload))

    except ApiError as e:
        return JSONResponse({"error": e.message}, status_code=e.status)
    except ValidationError as e:
        return JSONResponse({"error": "INVALID INPUT", "detail": e.errors(include_url=False, include_context=False)},
                            status_code=400)
    except (OperationalError, InterfaceError):
        logger.exception("database unavailable")
        return JSONResponse({"error": "SERVICE UNAVAILABLE"}, status_code=503)
    except Exception:
        logger.exception("unhandled api error")
        return JSONResponse({"error": "INTERNAL CORE ERROR"}, status_code=500)
