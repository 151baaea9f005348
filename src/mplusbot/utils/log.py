from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

ROOT_LOGGER = "mplusbot"
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_file: str | Path | None = "logs/mplusbot.log", level: int | str = logging.INFO) -> None:
    """Configure console (and optionally rotating file) logging for the bot.

    Args:
        log_file: Path of the log file, or ``None`` for console only.
        level: Logging level name or number.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = logging.Formatter(_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # discord.py is chatty at INFO
    logging.getLogger("discord").setLevel(max(level, logging.WARNING))

    logger.info("Logging system initialized")
