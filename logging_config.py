# logging_config.py
import logging
import os
from logging.handlers import RotatingFileHandler
from dotenv import load_dotenv

load_dotenv()
LOG_FILE = os.environ.get("LOG_FILE_PATH", "/tmp/ecoaction_app.log")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_file=None):
    """Attaches a single rotating file handler to the root logger; repeat calls are no-ops."""
    root = logging.getLogger()
    if any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        return

    root.setLevel(logging.INFO)
    # 10MB per file, keep last 5 files
    handler = RotatingFileHandler(log_file or LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=5)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # The Google clients are chatty at INFO.
    for noisy in ("google_genai", "urllib3", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
