import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from src.gemchat.config import LOGS_DIR

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s:%(funcName)s:%(lineno)d - %(message)s"


class ColorFormatter(logging.Formatter):
    """A logging formatter that adds color to console output."""

    GREY = "\x1b[38;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    CYAN = "\x1b[36;20m"
    RESET = "\x1b[0m"

    COLORS = {
        logging.DEBUG: CYAN,
        logging.INFO: GREY,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record):
        color = self.COLORS.get(record.levelno, self.GREY)
        formatter = logging.Formatter(f"{color}{LOG_FORMAT}{self.RESET}")
        return formatter.format(record)


class LoggingService:
    """
    Configures centralized logging: colored console output plus a rotating log file.
    """
    LOG_FILE = "gemchat.log"

    @staticmethod
    def setup_logging(console_level: int = logging.WARNING, logs_dir: Optional[Path] = None) -> Path:
        """
        Configure the root logger. Call once when the application starts.

        Args:
            console_level: Minimum level echoed to stderr. The chat output
                shares the terminal, so the default stays quiet.
            logs_dir: Directory for the rotating log file.

        Returns:
            Path of the log file.
        """
        logs_dir = logs_dir or LOGS_DIR
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file_path = logs_dir / LoggingService.LOG_FILE

        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(ColorFormatter())

        file_handler = RotatingFileHandler(
            log_file_path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

        root_logger.addHandler(console_handler)
        root_logger.addHandler(file_handler)

        # The SDK's HTTP stack is chatty at DEBUG.
        for noisy in ("httpx", "httpcore", "google_genai"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

        logging.info("Logging service initialized.")
        return log_file_path
