"""
FILE DESCRIPTION: Foundational module for global configuration and logging.
KEY FUNCTIONS/CLASSES: setup_logger, CompanyFormatter, configuration constants
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

# === CONFIGURATION SECTION ===

# Load .env from the working directory before reading any setting
load_dotenv()

# Network timeout for plain HTTP requests: asset downloads, webhooks (seconds)
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", 10))

USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
)

# Playwright navigation ceiling and post-navigation settle delay (milliseconds)
NAVIGATION_TIMEOUT_MS = int(os.getenv("NAVIGATION_TIMEOUT_MS", 60000))
SETTLE_DELAY_MS = int(os.getenv("SETTLE_DELAY_MS", 2000))

VIEWPORT_WIDTH = 1920
VIEWPORT_HEIGHT = 1080

# Canonical data directory for screenshots and cloned bundles
DATA_DIR = Path(os.getenv("PAGEWATCH_DATA_DIR", Path.cwd() / "data"))
CLONE_DIR = DATA_DIR / "cloned-sites"
SCREENSHOT_DIR = DATA_DIR / "screenshots"

# Per-clone capture limits
MAX_STYLESHEETS = 20
MAX_SCRIPTS = 20
MAX_IMAGES = 50
MAX_FONTS = 10

# Per-pixel colour sensitivity for visual diffing (0-1, lower = more sensitive)
PIXEL_THRESHOLD = float(os.getenv("PIXEL_THRESHOLD", 0.1))
# Minimum similarity percentage for a visual comparison to count as a match
MATCH_THRESHOLD = float(os.getenv("MATCH_THRESHOLD", 95))

# Monitor scheduling
MAX_WORKERS = int(os.getenv("MAX_WORKERS", 10))
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", 60))

# Snapshot persistence: "memory" or "mysql"
SNAPSHOT_BACKEND = os.getenv("SNAPSHOT_BACKEND", "memory").lower()

# Page rendering: "playwright" (headless Chromium) or "http" (plain GET, no JavaScript or screenshots)
FETCHER_BACKEND = os.getenv("FETCHER_BACKEND", "playwright").lower()

DB_CONFIG = {
    "host": os.getenv("MYSQL_HOST", "localhost"),
    "port": int(os.getenv("MYSQL_PORT", 3306)),
    "user": os.getenv("MYSQL_USER", "root"),
    "password": os.getenv("MYSQL_PASSWORD", ""),
    "database": os.getenv("MYSQL_DATABASE", "pagewatch"),
    "charset": "utf8mb4",
}

# Email alert channel
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
ALERT_FROM = os.getenv("ALERT_FROM", SMTP_USER)

LOG_FILE = os.getenv("PAGEWATCH_LOG_FILE")


# === LOGGING SECTION ===

class CompanyFormatter(logging.Formatter):
    """
    FLOW: Receives a log record -> Extracts timestamp -> Formats according to company standard
    (e.g., [ Tue Jan 06 05:32:41 AM UTC 2026 ]) -> Prepends level and context -> Returns final string.
    """
    def format(self, record):
        dt = datetime.fromtimestamp(record.created)
        timestamp = dt.strftime("%a %b %d %I:%M:%S %p UTC %Y")
        context = getattr(record, 'context', 'root')
        message = f"[ {timestamp} ] : {record.levelname} : {context} : {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logger(name="pagewatch", log_file=None, level=logging.INFO):
    """
    FLOW: Initializes/Retrieves logger -> Checks for existing handlers to prevent duplicates ->
    Sets propagation for child loggers -> Attaches Console and optional File handlers with CompanyFormatter.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    if name != "pagewatch":
        logger.propagate = True
        setup_logger("pagewatch", log_file=log_file, level=level)
        return logger

    formatter = CompanyFormatter()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# Global logger instance
logger = setup_logger(log_file=LOG_FILE)
