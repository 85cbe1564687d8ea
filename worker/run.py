# worker/run.py
# Scheduler-only process: run the timers without the HTTP surface.
import asyncio
import logging
import signal

from fantasy_live.db import Base, engine
from fantasy_live.settings import settings
from fantasy_live.services.scheduler import MatchScheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("worker")


async def main():
    if settings.ENV != "production":
        Base.metadata.create_all(bind=engine)

    sched = MatchScheduler()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows: Ctrl+C still raises KeyboardInterrupt
            pass

    await sched.start()
    logger.info("[worker] scheduler running")
    try:
        await stop.wait()
    finally:
        await sched.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
