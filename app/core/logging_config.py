from loguru import logger
import os

from app.core.config import LOG_DIR

# Create folder if missing
if not os.path.exists(LOG_DIR):
    os.makedirs(LOG_DIR)

# Remove default handler
logger.remove()

# General application log
logger.add(
    f"{LOG_DIR}/app.log",
    rotation="1 week",
    retention="4 weeks",
    level="INFO",
    enqueue=True,
    format="{time} | {level} | {message}"
)


def _stream(log_type: str, retention: str = "4 weeks"):
    logger.add(
        f"{LOG_DIR}/{log_type}s.log",
        rotation="1 week",
        retention=retention,
        level="INFO",
        enqueue=True,
        filter=lambda record: record["extra"].get("log_type") == log_type,
        format="{time} | {level} | {message}"
    )


# Booking lifecycle, payment, dispute and notification streams
_stream("booking")
_stream("payment", retention="12 weeks")
_stream("dispute", retention="12 weeks")
_stream("notification")

# Authorization failures and admin actions
_stream("audit", retention="26 weeks")

# Error logs
logger.add(
    f"{LOG_DIR}/errors.log",
    rotation="1 week",
    retention="8 weeks",
    level="ERROR",
    enqueue=True,
)


def get_logger():
    return logger
