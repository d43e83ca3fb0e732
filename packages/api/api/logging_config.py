"""Process-wide logging setup."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "hpack",
    "openai",
    "openai._base_client",
]


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger and quiet chatty third-party libraries."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
