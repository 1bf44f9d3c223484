import os
import logging
from logging.handlers import RotatingFileHandler
from config import LOG_DIR, LOG_FILE, LOG_LEVEL, LOG_TO_CONSOLE

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

def get_logger(name: str) -> logging.Logger:
    """Module logger under the shared 'farmer_orders' tree, writing to the rotating log file."""
    os.makedirs(LOG_DIR, exist_ok=True)

    root = logging.getLogger("farmer_orders")
    root.setLevel(getattr(logging, LOG_LEVEL, logging.DEBUG))

    # handlers live on the shared parent so every module writes to one file
    if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        handler = RotatingFileHandler(
            os.path.join(LOG_DIR, LOG_FILE),
            maxBytes=5 * 1024 * 1024,   # 5 MB
            backupCount=5               # keep 5 logs
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

        if LOG_TO_CONSOLE:
            console = logging.StreamHandler()
            console.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(console)

    return root.getChild(name)
