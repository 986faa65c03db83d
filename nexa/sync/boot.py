# nexa/sync/boot.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from nexa.config import BOOT_RETRIES, BOOT_RETRY_DELAY, BOOT_TIMEOUT
from nexa.exceptions import BackendUnreachableError, NexaAPIError, ServiceUnavailableError
from nexa.schemas import User, default_avatar, user_id_for
from nexa.sync.loop import LocalSource, RemoteSource, SyncLoop
from nexa.sync.store import LocalStore

logger = logging.getLogger(__name__)

ONLINE = "online"
LOCAL = "local"


@dataclass
class BootResult:
    mode: str
    user: Optional[User] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def online(self) -> bool:
        return self.mode == ONLINE


async def boot(
    client,
    store: LocalStore,
    *,
    retries: int = BOOT_RETRIES,
    delay: float = BOOT_RETRY_DELAY,
    timeout: float = BOOT_TIMEOUT,
) -> BootResult:
    """
    Probe the API with ``ping``. Each attempt is bounded by ``timeout``; failed
    attempts are retried ``retries`` times, ``delay`` seconds apart. A 503 is
    not retried. Whatever happens the result is either online or local-only.
    """
    error = None
    attempts = 0
    for attempt in range(retries + 1):
        attempts += 1
        try:
            await asyncio.wait_for(client.ping(), timeout)
            error = None
            break
        except asyncio.TimeoutError:
            error = f"ping timed out after {timeout:g}s"
        except ServiceUnavailableError as e:
            error = f"service unavailable: {e.message}"
            break
        except (BackendUnreachableError, NexaAPIError) as e:
            error = str(e)
        except Exception as e:
            logger.exception("BOOT probe raised unexpectedly")
            error = f"{type(e).__name__}: {e}"

        if attempt < retries:
            logger.warning("BOOT probe %d/%d failed (%s), retrying in %.1fs", attempt + 1, retries + 1, error, delay)
            await asyncio.sleep(delay)

    user = store.load_session()
    if error is not None:
        logger.error("BOOT_FAILURE: %s -> local-only mode", error)
        return BootResult(mode=LOCAL, user=user, error=error, attempts=attempts)

    logger.info("BOOT ok after %d attempt(s)", attempts)
    return BootResult(mode=ONLINE, user=user, attempts=attempts)


def build_sync(result: BootResult, client, store: LocalStore, broadcaster=None, **kwargs) -> SyncLoop:
    source = RemoteSource(client, store) if result.online else LocalSource(store)
    return SyncLoop(source, store, broadcaster, **kwargs)


# ===== session =====
def local_user(email: str) -> User:
    email = email.strip().lower()
    name = email.split("@", 1)[0]
    return User(
        id=user_id_for(email),
        name=name,
        avatar=default_avatar(name),
        role="user",
        email=email,
    )


async def login(result: BootResult, client, store: LocalStore, email: str, password: str) -> User:
    """
    Online: identity comes from the API. Local-only: a regular user derived from
    the email (no admin role without the server).
    """
    user = await client.auth(email, password) if result.online else local_user(email)
    store.save_session(user)
    result.user = user
    return user


def logout(result: BootResult, store: LocalStore) -> None:
    store.clear_session()
    result.user = None
