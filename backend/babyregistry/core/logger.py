import logging
from pathlib import Path

from babyregistry.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Driver loggers that flood DEBUG output with one line per statement.
NOISY_LOGGERS = ("aiosqlite", "asyncio", "passlib", "sqlalchemy.engine")


def _file_handler(log_file: str, root: logging.Logger) -> logging.Handler | None:
    log_path = Path(log_file).resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == str(log_path):
            return None
    return logging.FileHandler(log_path, encoding="utf-8")


def configure_logging(level_name: str | None = None) -> logging.Logger:
    """Attach stream/file handlers to the root logger and return the app logger.

    Safe to call more than once: handlers are only added when missing.
    """
    level_name = (level_name or settings.log_level or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()

    handlers: list[logging.Handler] = []
    if not root.handlers:
        handlers.append(logging.StreamHandler())
    if settings.log_file:
        file_handler = _file_handler(settings.log_file, root)
        if file_handler is not None:
            handlers.append(file_handler)

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger = logging.getLogger("babyregistry")
    logger.setLevel(level)
    return logger
