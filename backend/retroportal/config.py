"""Application configuration. Loads from environment and .env file."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
# Load .env from cwd, then backend/.env, then project root .env
load_dotenv()
load_dotenv(BASE_DIR / ".env")
load_dotenv(BASE_DIR.parent / ".env")

PACKAGE_DIR = Path(__file__).resolve().parent

# Paths (override with env)
TEMPLATES_DIR = Path(os.getenv("TEMPLATES_DIR", str(PACKAGE_DIR / "templates")))
STATIC_DIR = Path(os.getenv("STATIC_DIR", str(BASE_DIR / "static")))

# Upstream archive
ARCHIVE_BASE_URL = os.getenv("ARCHIVE_BASE_URL", "https://archive.org").rstrip("/")
WAYBACK_CDX_URL = os.getenv("WAYBACK_CDX_URL", "https://web.archive.org/cdx/search/cdx")
HTTP_USER_AGENT = os.getenv("HTTP_USER_AGENT", "RetroPortal/1.0")
SEARCH_ROWS = int(os.getenv("SEARCH_ROWS", "50"))
SNAPSHOT_LIMIT = int(os.getenv("SNAPSHOT_LIMIT", "500"))
TOP_COLLECTIONS = int(os.getenv("TOP_COLLECTIONS", "10"))

# Timeouts (seconds). CONVERT_TIMEOUT covers the whole run of one conversion.
FETCH_CONNECT_TIMEOUT = float(os.getenv("FETCH_CONNECT_TIMEOUT", "10"))
FETCH_READ_TIMEOUT = float(os.getenv("FETCH_READ_TIMEOUT", "30"))
CONVERT_TIMEOUT = float(os.getenv("CONVERT_TIMEOUT", "60"))

# Image transcoding
IMAGE_CHUNK_SIZE = int(os.getenv("IMAGE_CHUNK_SIZE", str(64 * 1024)))
CONVERTER_BACKEND = os.getenv("CONVERTER_BACKEND", "imagemagick").strip().lower()
# Command used for the imagemagick backend, split on whitespace ("magick convert" works too)
CONVERTER_COMMAND = os.getenv("CONVERTER_COMMAND", "convert").split()
PILLOW_MAX_INPUT_MB = int(os.getenv("PILLOW_MAX_INPUT_MB", "20"))
PILLOW_MAX_INPUT_BYTES = PILLOW_MAX_INPUT_MB * 1024 * 1024
# Largest w or h a client may ask for; the converter enlarges to whatever it is given
MAX_IMAGE_DIMENSION = int(os.getenv("MAX_IMAGE_DIMENSION", "2048"))

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3005"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("retroportal")
