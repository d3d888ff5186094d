import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from coupon_engine.config import LOG_DIR, LOG_LEVEL

logger = logging.getLogger("coupon_engine")
logger.setLevel(LOG_LEVEL)
logger.handlers.clear()

_formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

# Console
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(LOG_LEVEL)
console_handler.setFormatter(_formatter)
logger.addHandler(console_handler)

# File, only when a log directory is configured
if LOG_DIR:
    log_dir = Path(LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_dir / "coupon_engine.log",
        maxBytes=2 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(LOG_LEVEL)
    file_handler.setFormatter(_formatter)
    logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"coupon_engine.{name}")
