# Periodic purge of expired pairing codes.
# Started from the app lifespan; also runnable once from cron:
#   python -m authlink.services.sweeper

import asyncio
import logging
from typing import Callable
from sqlalchemy.orm import Session
from authlink.services.auth_service import AuthLinkService
from authlink.services.errors import StorageFault

logger = logging.getLogger(__name__)

def sweep_once(session_factory: Callable[[], Session]) -> int:
    with session_factory() as db:
        return AuthLinkService(db).sweep_expired()

async def run_sweeper(session_factory: Callable[[], Session], interval_seconds: float) -> None:
    # Best-effort: a failed sweep is logged and retried on the next tick
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            deleted = await asyncio.to_thread(sweep_once, session_factory)
        except StorageFault as e:
            logger.warning(f"Sweep skipped: {e}")
            continue
        if deleted:
            logger.info(f"Sweep removed {deleted} expired code(s)")

if __name__ == "__main__":
    from authlink.db import SessionLocal, init_db

    init_db()
    print(f"Deleted {sweep_once(SessionLocal)} expired code(s)")
