"""
Configuration management for the y_router package.
This module handles configuration loading from the environment and logging setup.
"""

import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from .types import RouterDefaults

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


def parse_size_value(value, default_value=None):
    """Parse a byte size that can be in 'kb'/'mb' format (512kb, 10mb) or a plain number.

    Args:
        value: The value to parse (can be string like "10mb", "512kb" or integer)
        default_value: Default value to return if parsing fails

    Returns:
        Integer byte count

    Examples:
        parse_size_value("10mb") -> 10485760
        parse_size_value("512kb") -> 524288
        parse_size_value("2048") -> 2048
        parse_size_value(2048) -> 2048
    """
    if value is None:
        return default_value

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        value = value.strip().lower()

        for suffix, multiplier in (("mb", 1024 * 1024), ("kb", 1024)):
            if value.endswith(suffix):
                try:
                    return int(float(value[: -len(suffix)]) * multiplier)
                except (ValueError, TypeError):
                    logger.warning(
                        f"Could not parse size value '{value}', using default {default_value}"
                    )
                    return default_value

        try:
            return int(value)
        except (ValueError, TypeError):
            logger.warning(
                f"Could not parse size value '{value}', using default {default_value}"
            )
            return default_value

    logger.warning(
        f"Unexpected size value type '{type(value)}' for value '{value}', using default {default_value}"
    )

    return default_value


class Config:
    """Router server configuration, read-only after start-up"""

    def __init__(self):
        # Upstream OpenAI-compatible endpoint
        self.openrouter_base_url = os.environ.get(
            "OPENROUTER_BASE_URL", RouterDefaults.DEFAULT_BASE_URL
        ).rstrip("/")

        # Server configuration
        self.host = os.environ.get("HOST", RouterDefaults.DEFAULT_HOST)
        self.port = int(os.environ.get("PORT", str(RouterDefaults.DEFAULT_PORT)))
        self.log_level = os.environ.get("LOG_LEVEL", RouterDefaults.DEFAULT_LOG_LEVEL)
        self.log_file_path = os.environ.get(
            "LOG_FILE_PATH",
            Path(__file__).resolve().parent / "server.log",
        )

        # Request limits and timeouts
        self.max_body_size = parse_size_value(
            os.environ.get("MAX_BODY_SIZE"), RouterDefaults.DEFAULT_MAX_BODY_SIZE
        )
        self.upstream_timeout = float(
            os.environ.get(
                "UPSTREAM_TIMEOUT", str(RouterDefaults.DEFAULT_UPSTREAM_TIMEOUT)
            )
        )

    def describe(self) -> dict:
        """Summarize the effective configuration for start-up logging"""
        return {
            "base_url": self.openrouter_base_url,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
            "max_body_size": self.max_body_size,
            "upstream_timeout": self.upstream_timeout,
        }


# Global configuration instance
config = Config()


# Create a filter to block any log messages containing specific strings
class MessageFilter(logging.Filter):
    def filter(self, record):
        blocked_phrases = [
            "HTTP Request:",
            "Sending HTTP Request",
        ]

        if hasattr(record, "msg") and isinstance(record.msg, str):
            for phrase in blocked_phrases:
                if phrase in record.msg:
                    return False
        return True


class ColorizedFormatter(logging.Formatter):
    """Custom formatter to highlight stream summaries and anomalies"""

    BLUE = "\033[94m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def format(self, record):
        message = super().format(record)
        if record.levelno >= logging.ERROR:
            return f"{self.RED}{message}{self.RESET}"
        if record.levelno == logging.WARNING:
            return f"{self.YELLOW}{message}{self.RESET}"
        if isinstance(record.msg, str) and record.msg.startswith("STREAMING "):
            return f"{self.BOLD}{self.GREEN}{message}{self.RESET}"
        return message


LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Levels applied to library loggers; their records reach our handlers through the root
LIBRARY_LOG_LEVELS = {
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.INFO,
}


def _build_handlers(log_file_path) -> list[logging.Handler]:
    log_path = Path(log_file_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path, mode="a")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColorizedFormatter(LOG_FORMAT))

    # A filter on the root logger would not see records propagated from child loggers
    message_filter = MessageFilter()
    for handler in (file_handler, console_handler):
        handler.addFilter(message_filter)
    return [file_handler, console_handler]


def setup_logging():
    """Install the router's file and console handlers on the root logger.

    Does nothing when the root logger already has handlers, so uvicorn reloads
    and repeated calls do not duplicate output.
    """
    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        return

    try:
        handlers = _build_handlers(config.log_file_path)
        root_logger.setLevel(config.log_level.upper())
    except (OSError, ValueError) as e:
        print(f"🔴 Error setting up logging: {e}")
        sys.exit(1)

    for handler in handlers:
        root_logger.addHandler(handler)

    levels = dict(LIBRARY_LOG_LEVELS)
    if config.log_level.lower() == "debug":
        levels.update({"openai": logging.INFO, "httpx": logging.INFO})
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)
    logging.getLogger("uvicorn.access").propagate = True

    logger.info(f"✅ Logging configured: level={config.log_level}, file={config.log_file_path}")
