# config.py

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Lookup service ---
IFSC_API_BASE_URL = os.getenv("IFSC_API_BASE_URL", "https://ifsc.razorpay.com").rstrip("/")
IFSC_LOOKUP_TIMEOUT = float(os.getenv("IFSC_LOOKUP_TIMEOUT", 5.0))
# 0 means every row is looked up at once
IFSC_MAX_CONCURRENCY = int(os.getenv("IFSC_MAX_CONCURRENCY", 0))
LOOKUP_ERROR_MESSAGE = "Invalid IFSC or not found"

# --- Spreadsheet handling ---
DEFAULT_LOOKUP_COLUMN = os.getenv("DEFAULT_LOOKUP_COLUMN", "Remitter IFSC")
SUPPORTED_FILE_EXTENSIONS = [".xlsx", ".xls"]
PAGE_SIZE = int(os.getenv("PAGE_SIZE", 10))

EXPORT_FILENAME = os.getenv("EXPORT_FILENAME", "enriched_ifsc_details.xlsx")
EXPORT_SHEET_NAME = os.getenv("EXPORT_SHEET_NAME", "Bank Details")
EXPORT_HEADER_FROM_FIRST_ROW = _env_bool("EXPORT_HEADER_FROM_FIRST_ROW", False)
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# --- Application ---
# Sessions idle longer than this many seconds are dropped; 0 keeps them until deleted
SESSION_IDLE_TIMEOUT = float(os.getenv("SESSION_IDLE_TIMEOUT", 3600))
LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",") if origin.strip()]
