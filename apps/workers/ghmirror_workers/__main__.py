"""
Single entrypoint for mirror jobs.

Usage:
    JOB_TYPE=sync python -m ghmirror_workers       # Full or filtered sync (SYNC_FILTER)
    JOB_TYPE=init_db python -m ghmirror_workers    # Create the mirror schema and tables

SIGTERM and SIGINT cancel the running job; the job exits non-zero.
"""

import asyncio
import logging
import os
import signal
import sys

from ghmirror_backend.core.redis import close_redis
from ghmirror_workers.logging_config import setup_logging


class GracefulShutdown:
    """Cancels the running job task when a termination signal arrives."""

    def __init__(self):
        self._task: asyncio.Task | None = None
        self._requested = False

    def register_task(self, task: asyncio.Task) -> None:
        self._task = task

    def signal_handler(self, signum: int) -> None:
        logger = logging.getLogger(__name__)
        logger.info(f"Received signal {signum}, cancelling job...")
        self._requested = True
        if self._task and not self._task.done():
            self._task.cancel()

    @property
    def requested(self) -> bool:
        return self._requested


async def run_worker_task(job_type: str) -> dict:
    """Run the specified worker job."""

    match job_type:
        case "sync":
            from ghmirror_workers.jobs.sync_job import run_sync_job
            return await run_sync_job()

        case "init_db":
            from ghmirror_workers.jobs.init_db_job import run_init_db_job
            return await run_init_db_job()

        case _:
            raise ValueError(f"Unknown job type: {job_type}")


async def main() -> None:
    job_id = setup_logging()
    logger = logging.getLogger(__name__)

    job_type = os.getenv("JOB_TYPE", "sync").lower()

    logger.info(
        "Starting job",
        extra={"job_type": job_type, "job_id": job_id},
    )

    shutdown = GracefulShutdown()
    task = asyncio.create_task(run_worker_task(job_type))
    shutdown.register_task(task)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: shutdown.signal_handler(s))

    try:
        result = await task
        logger.info(
            "Job completed successfully",
            extra={"job_type": job_type, "result": result},
        )

    except asyncio.CancelledError:
        logger.warning("Job cancelled", extra={"job_type": job_type, "signalled": shutdown.requested})
        sys.exit(1)

    except Exception as exc:
        logger.exception(
            f"Job failed: {exc}",
            extra={"job_type": job_type},
        )
        sys.exit(1)

    finally:
        await close_redis()


if __name__ == "__main__":
    asyncio.run(main())
