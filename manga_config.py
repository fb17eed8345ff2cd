"""
Configuration and logging setup for the manga bookmark tools
"""

import os
import sys
import logging
from datetime import datetime
from typing import Optional
from dataclasses import dataclass

# Load .env file
from dotenv import load_dotenv
load_dotenv()  # This will load .env from current directory or parent directories

LOGGER_NAME = 'manga_bookmarks'


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class MangaConfig:
    """Runtime settings, overridable from the command line"""
    log_dir: str = "./logs"
    log_level: str = "INFO"
    db_path: Optional[str] = None
    show_progress: bool = True
    encoding: str = "utf-8"

    @classmethod
    def from_env(cls) -> 'MangaConfig':
        """Create config from environment variables"""
        return cls(
            log_dir=os.environ.get('MANGA_LOG_DIR', cls.log_dir),
            log_level=os.environ.get('MANGA_LOG_LEVEL', cls.log_level).upper(),
            db_path=os.environ.get('MANGA_DB_PATH') or None,
            show_progress=_env_flag('MANGA_SHOW_PROGRESS', cls.show_progress),
            encoding=os.environ.get('MANGA_ENCODING', cls.encoding),
        )


def setup_manga_logger(log_dir: str = "./logs", level: str = "INFO") -> logging.Logger:
    """Set up the dedicated logger shared by all manga bookmark modules"""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    # Create logs directory if it doesn't exist
    os.makedirs(log_dir, exist_ok=True)
    log_filename = os.path.join(log_dir, f"{timestamp}.log")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    logger.handlers.clear()

    file_handler = logging.FileHandler(log_filename, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(file_handler)

    # Warnings also reach the terminal; stdout may be carrying CSV
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    logger.addHandler(console_handler)

    # Don't propagate to root logger to avoid console spam
    logger.propagate = False

    logger.info("=== Manga Bookmarks Log Started ===")
    logger.info(f"Log file: {log_filename}")

    print(f"📝 Detailed logging enabled: {log_filename}", file=sys.stderr)

    return logger
