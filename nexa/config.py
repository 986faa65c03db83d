# nexa/config.py
import os
from pathlib import Path
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y")


# 우선순위: DB_URL > 조합형 MySQL 환경변수 > 로컬 SQLite
DB_URL = os.getenv("DB_URL")
if not DB_URL:
    DB_HOST = os.getenv("DB_HOST", "")
    if DB_HOST:
        DB_NAME = os.getenv("DB_NAME", "nexa")
        DB_USER = os.getenv("DB_USER", "nexa")
        DB_PASS = os.getenv("DB_PASS", "")
        DB_URL = f"mysql+asyncmy://{DB_USER}:{DB_PASS}@{DB_HOST}:3306/{DB_NAME}?charset=utf8mb4"
    else:
        DB_URL = f"sqlite+aiosqlite:///{PROJECT_ROOT / 'nexa.db'}"

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "") or ""
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "") or ""

NEXA_API_BASE = os.getenv("NEXA_API_BASE", "http://127.0.0.1:8000")
NEXA_VERSION = os.getenv("NEXA_VERSION", "1.0.4-stable")
NEXA_NETWORK = os.getenv("NEXA_NETWORK", "NEXA-MAINNET")
NEXA_DEBUG = _flag("NEXA_DEBUG")

MESSAGE_LIMIT = int(os.getenv("MESSAGE_LIMIT", "50"))
MESSAGE_LIMIT_MAX = 100

SYNC_INTERVAL = float(os.getenv("SYNC_INTERVAL", "5"))
BOOT_RETRIES = int(os.getenv("BOOT_RETRIES", "2"))
BOOT_RETRY_DELAY = float(os.getenv("BOOT_RETRY_DELAY", "1.5"))
BOOT_TIMEOUT = float(os.getenv("BOOT_TIMEOUT", "10"))

RETENTION_HOUR = int(os.getenv("RETENTION_HOUR", "7"))

# 로컬 스냅샷 저장소: REDIS_URL > LOCAL_DB_PATH(파일) > 메모리
REDIS_URL = os.getenv("REDIS_URL", "")
LOCAL_DB_PATH = os.getenv("LOCAL_DB_PATH", "")

BRAT_API_URL = os.getenv("BRAT_API_URL", "https://api.nexray.web.id/maker/brathd")
