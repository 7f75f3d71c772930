"""
Centralized logging utility for the auction registry platform.

Every module obtains its logger through get_logger(__name__); batch-level code
wraps it in a contextual adapter so each line carries the source label and
batch id it belongs to.
"""

import logging
import logging.config
import os
from typing import Optional

import yaml

from config.constants import LOGS_DIR


def setup_logging(
    default_path: str = "config/logging.yaml",
    default_level: int = logging.INFO,
    env_key: str = "LOG_CFG"
) -> None:
    """
    Configure logging from a YAML dictConfig file.

    Args:
        default_path: Path to the logging configuration YAML file
        default_level: Level used by basicConfig when the file is missing or broken
        env_key: Environment variable that overrides default_path
    """
    path = os.getenv(env_key, None) or default_path

    if not os.path.exists(path):
        logging.basicConfig(level=default_level)
        logging.warning(f"Logging configuration file not found at {path}. Using default configuration.")
        return

    # File handlers write under logs/
    LOGS_DIR.mkdir(parents=True, exist_ok=True)

    with open(path, "rt", encoding="utf-8") as f:
        try:
            config = yaml.safe_load(f.read())
            logging.config.dictConfig(config)
        except (yaml.YAMLError, ValueError, TypeError) as e:
            logging.basicConfig(level=default_level)
            logging.error(f"Error loading logging configuration from {path}: {e}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the specified module name.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Batch started")
    """
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the adapter's context as ``[k=v | k=v]``."""

    def process(self, msg: str, kwargs: dict) -> tuple:
        if self.extra:
            context_str = " | ".join(f"{k}={v}" for k, v in self.extra.items())
            return f"[{context_str}] {msg}", kwargs
        return msg, kwargs


def get_contextual_logger(name: str, context: Optional[dict] = None) -> LoggerAdapter:
    """
    Get a logger that tags each line with contextual information.

    Example:
        >>> logger = get_contextual_logger(__name__, {"source": "busan", "batch": "a1b2"})
        >>> logger.info("Processing page")  # [source=busan | batch=a1b2] Processing page
    """
    return LoggerAdapter(get_logger(name), context or {})
