# Lifecycle event log for pairing codes (issue, claim, poll, sweep).
# Always logs; also appends to a CSV when EVENT_LOG_FILE is set.
# The CSV sink is best-effort: a failed write never fails the request.

import csv
import time
import os
import logging
import threading
from authlink.core.config import settings

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

CSV_HEADER = ["timestamp", "event_type", "code", "outcome", "latency_ms"]

# Serialises the exists-check and header write so a new file gets one header
_csv_lock = threading.Lock()

def mask_code(code: str | None) -> str:
    # Codes are bearer secrets until claimed; never log them whole
    if not code:
        return "-"
    return code[:4] + "*" * max(len(code) - 4, 0)

def log_event(event_type: str, code: str | None, outcome: str, latency_ms: int = 0):
    logger.info(f"{event_type}: code={mask_code(code)} outcome={outcome} latency_ms={latency_ms}")

    path = settings.EVENT_LOG_FILE
    if not path:
        return

    try:
        with _csv_lock:
            new_file = not os.path.exists(path)
            with open(path, "a", newline="") as f:
                writer = csv.writer(f)
                if new_file:
                    writer.writerow(CSV_HEADER)
                writer.writerow([time.time(), event_type, mask_code(code), outcome, latency_ms])
    except OSError:
        logger.exception(f"Event log write failed: path={path}")
