"""Project-wide configuration."""

import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(os.environ.get("EVENT_FACES_PROJECT_ROOT", Path.cwd()))

load_dotenv(PROJECT_ROOT / ".env")

STORAGE_DIR = Path(os.environ.get("STORAGE_DIR", PROJECT_ROOT / "data" / "storage"))
DB_PATH = Path(os.environ.get("EVENT_FACES_DB_PATH", PROJECT_ROOT / "event_faces.duckdb"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Tencent Cloud IAI face detection
TENCENT_SECRET_ID = os.environ.get("TENCENT_SECRET_ID", "")
TENCENT_SECRET_KEY = os.environ.get("TENCENT_SECRET_KEY", "")
TENCENT_REGION = os.environ.get("TENCENT_REGION", "ap-guangzhou")
TENCENT_IAI_HOST = "iai.tencentcloudapi.com"

# Provider limits: JPEG long edge <= 4000px, base64 payload source <= 5MB
MAX_EDGE = 4000
MAX_PAYLOAD_BYTES = 5 * 1024 * 1024
MAX_FACE_NUM = 120
MIN_FACE_SIZE = 34
FACE_MODEL_VERSION = "3.0"
DETECT_TIMEOUT = float(os.environ.get("DETECT_TIMEOUT", "60"))

FACE_PADDING = 10
JPEG_QUALITY = 90

# Background pool for upload-triggered detection and avatar downloads
WORKER_COUNT = int(os.environ.get("WORKER_COUNT", "2"))

# Per-event storage layout
ORIGINAL_FILENAME = "original.jpg"
METADATA_FILENAME = "metadata.json"
FACES_DIRNAME = "faces"
AVATARS_DIRNAME = "avatars"
ALLOWED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png")

# QQ profile lookups
QQ_NICKNAME_URL = "https://api.ilingku.com/int/v1/qqname"
QQ_AVATAR_URL = "https://q1.qlogo.cn/g"
QQ_AVATAR_SIZE = 640
QQ_NICKNAME_TIMEOUT = 10
QQ_AVATAR_TIMEOUT = 30
QQ_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
