# nexa/scripts/watch_chat.py
"""
Terminal chat client: boot (online or local-only), log in, follow the chat and
send every typed line. ``/fav <url>`` toggles a favorite sticker, ``/quit`` exits.
"""
import asyncio
import logging
import os
from datetime import datetime

from dotenv import load_dotenv

from nexa.clients.nexa_client import NexaAPIClient
from nexa.exceptions import NexaError
from nexa.schemas import Message
from nexa.sync.boot import boot, build_sync, login
from nexa.sync.broadcast import make_broadcaster
from nexa.sync.guard import SendGuard
from nexa.sync.store import LocalStore

load_dotenv()
logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


def show(items: list, seen: set) -> None:
    for m in items:
        if m.id in seen:
            continue
        seen.add(m.id)
        ts = datetime.fromtimestamp(m.timestamp / 1000).strftime("%H:%M")
        body = m.text or m.stickerUrl or ""
        if m.imageUrl:
            body += f" [{m.imageUrl}]"
        print(f"[{ts}] {m.userName} ({m.role}): {body}")


async def main():
    email = os.getenv("TEST_EMAIL", "")
    if not email:
        print("❗ TEST_EMAIL 환경변수를 설정하세요.")
        return

    store = LocalStore()
    broadcaster = make_broadcaster()
    async with NexaAPIClient() as client:
        result = await boot(client, store)
        print(f"== mode: {result.mode}" + (f" ({result.error})" if result.error else ""))

        user = result.user
        if user is None or user.email != email.lower():
            try:
                user = await login(result, client, store, email, os.getenv("TEST_PASSWORD", ""))
            except NexaError as e:
                print("❌ login failed:", e)
                await broadcaster.close()
                return
        print(f"== logged in as {user.name} ({user.role})")

        seen: set = set()
        sync = build_sync(result, client, store, broadcaster, guard=SendGuard(),
                          on_change=lambda items: show(items, seen))
        sync.start()

        loop = asyncio.get_running_loop()
        try:
            while True:
                line = (await loop.run_in_executor(None, input)).strip()
                if line == "/quit":
                    break
                if line.startswith("/fav "):
                    print("favorites:", store.toggle_favorite_sticker(line[5:].strip()))
                    continue
                if not line:
                    continue
                try:
                    await sync.send(Message(userId=user.id, userName=user.name,
                                            userAvatar=user.avatar, text=line, role=user.role))
                except NexaError as e:
                    print("❌", e)
        except (EOFError, KeyboardInterrupt):
            pass
        finally:
            await sync.stop()
            await broadcaster.close()


if __name__ == "__main__":
    asyncio.run(main())
