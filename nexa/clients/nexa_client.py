# nexa/clients/nexa_client.py
import asyncio, logging, time
from typing import Any, Dict, List, Optional

import httpx

from nexa.config import NEXA_API_BASE
from nexa.exceptions import (
    BackendUnreachableError,
    NexaAPIError,
    STATUS_ERRORS,
)
from nexa.schemas import Message, Suggestion, Ticket, User

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)


class NexaAPIClient:
    """
    /api 엔드포인트용 비동기 클라이언트.
    transport 를 넘기면 (예: httpx.MockTransport) 네트워크 없이 동작한다.
    """

    def __init__(
        self,
        base_url: str = NEXA_API_BASE,
        timeout: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_attempts: int = 5,
        backoff: float = 0.5,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.backoff = backoff
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def close(self):
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # ===== 공통 호출 =====
    async def _request(self, method: str, params: Dict[str, Any], body: Optional[dict]) -> httpx.Response:
        try:
            if method == "GET":
                return await self._http.get("/api", params=params)
            return await self._http.post("/api", params=params, json=body)
        except httpx.TransportError as e:
            raise BackendUnreachableError(f"{type(e).__name__}: {e}") from e

    async def call(
        self,
        action: str,
        payload: Optional[dict] = None,
        *,
        method: str = "POST",
        retry: bool = True,
    ) -> Any:
        if method == "GET":
            # cache-buster
            params = {"action": action, "t": int(time.time() * 1000), **(payload or {})}
            body = None
        else:
            params = {}
            body = {"action": action, "payload": payload or {}}

        attempts = self.max_attempts if retry else 1
        backoff = self.backoff
        resp = None
        for attempt in range(attempts):
            resp = await self._request(method, params, body)
            if resp.status_code < 400:
                try:
                    return resp.json()
                except ValueError:
                    # 프록시가 index.html 을 돌려주는 경우 등
                    raise NexaAPIError(resp.status_code, "MALFORMED RESPONSE")
            if resp.status_code in RETRY_STATUSES and attempt < attempts - 1:
                logger.warning("api %s -> %s, retrying in %.1fs", action, resp.status_code, backoff)
                await asyncio.sleep(backoff)
                backoff *= 2
                continue
            break

        try:
            data = resp.json()
        except ValueError:
            data = None
        message = (data.get("error") if isinstance(data, dict) else None) or resp.text
        error_cls = STATUS_ERRORS.get(resp.status_code, NexaAPIError)
        raise error_cls(resp.status_code, str(message))

    # ===== actions =====
    async def ping(self) -> dict:
        return await self.call("ping", method="GET", retry=False)

    async def auth_config(self) -> dict:
        return await self.call("auth_config", method="GET")

    async def auth(self, email: str, password: str) -> User:
        data = await self.call("auth", {"email": email, "password": password}, retry=False)
        return User.model_validate(data["user"])

    async def update_profile(self, user: User) -> User:
        data = await self.call(
            "update_profile", {"user": {"id": user.id, "name": user.name, "avatar": user.avatar}}
        )
        return User.model_validate(data["user"])

    async def get_messages(self, limit: Optional[int] = None) -> List[Message]:
        payload = {"limit": limit} if limit else None
        data = await self.call("get_messages", payload, method="GET")
        return [Message.model_validate(m) for m in data]

    async def send_message(self, message: Message) -> bool:
        data = await self.call("send_message", {"message": message.model_dump(exclude_none=True)})
        return bool(data.get("success"))

    async def get_tickets(self, user_id: Optional[str] = None) -> List[Ticket]:
        payload = {"userId": user_id} if user_id else None
        data = await self.call("get_tickets", payload, method="GET")
        return [Ticket.model_validate(t) for t in data]

    async def send_ticket(self, ticket: Ticket) -> bool:
        data = await self.call("send_ticket", {"ticket": ticket.model_dump()})
        return bool(data.get("success"))

    async def get_suggestions(self) -> List[Suggestion]:
        data = await self.call("get_suggestions", method="GET")
        return [Suggestion.model_validate(s) for s in data]

    async def send_suggestion(self, suggestion: Suggestion) -> bool:
        data = await self.call("send_suggestion", {"suggestion": suggestion.model_dump()})
        return bool(data.get("success"))

    # 관리자 전용: auth = {"email": ..., "password": ...}
    async def close_ticket(self, ticket_id: str, auth: dict) -> bool:
        data = await self.call("close_ticket", {"id": ticket_id, "auth": auth})
        return bool(data.get("success"))

    async def delete(self, collection: str, item_id: str, auth: dict) -> bool:
        action = {
            "messages": "delete_message",
            "tickets": "delete_ticket",
            "suggestions": "delete_suggestion",
        }[collection]
        data = await self.call(action, {"id": item_id, "auth": auth})
        return bool(data.get("success"))
