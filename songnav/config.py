"""
Church Song Navigator - Configuration
All settings loaded from environment variables with sensible defaults.

The application keeps its relational data in a local SQLite file and its
binary assets (sheet-music images, audio) in an S3-compatible bucket
(Cloudflare R2) that is served from a public base URL.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
_ = load_dotenv()

# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
APP_ENV = os.getenv("APP_ENV", "development")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# ---------------------------------------------------------------------------
# Admin authentication (single shared token)
# ---------------------------------------------------------------------------
_DEFAULT_ADMIN_TOKEN = "change-me-admin-token"
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", _DEFAULT_ADMIN_TOKEN)
ADMIN_COOKIE_NAME = "admin_token"
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"

if APP_ENV == "production" and ADMIN_TOKEN == _DEFAULT_ADMIN_TOKEN:
    raise RuntimeError(
        "ADMIN_TOKEN must be changed from the default value in production. "
        "Set the ADMIN_TOKEN environment variable to a random secret."
    )

# Seed values written to church_config on first run, and returned when the
# config row cannot be read.
DEFAULT_CHURCH_NAME = os.getenv("DEFAULT_CHURCH_NAME", "郭溪教会")
DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "222221")

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = BASE_DIR.parent

DB_PATH = Path(os.getenv("DB_PATH", str(PROJECT_ROOT / "data" / "songnav.db")))

TEMPLATES_DIR = BASE_DIR / "templates"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ---------------------------------------------------------------------------
# Object storage (Cloudflare R2 / any S3-compatible endpoint)
# ---------------------------------------------------------------------------
R2_BUCKET = os.getenv("R2_BUCKET", "")
R2_ENDPOINT_URL = os.getenv("R2_ENDPOINT_URL", "")  # e.g. https://<account>.r2.cloudflarestorage.com
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID", "")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY", "")
R2_REGION = os.getenv("R2_REGION", "auto")

# Public domain the bucket is served from; object URLs are PUBLIC_BASE_URL/<key>
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "")

# Key prefixes per upload kind
UPLOAD_NAMESPACES = {
    "sheet": "sheets",
    "audio": "audio",
}

# ---------------------------------------------------------------------------
# Upload limits
# ---------------------------------------------------------------------------
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "50"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024

# ---------------------------------------------------------------------------
# Admin collection history paging
# ---------------------------------------------------------------------------
DEFAULT_PER_PAGE = int(os.getenv("DEFAULT_PER_PAGE", "10"))
MAX_PER_PAGE = int(os.getenv("MAX_PER_PAGE", "100"))


def ensure_directories() -> None:
    """Create the local directories the application writes to.

    Only the SQLite database lives on local disk; uploaded files go
    straight to the object store.
    """
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
