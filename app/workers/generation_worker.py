"""Generation worker: consumes durable generation jobs.

Runs WORKER_CONCURRENCY consumer slots in one event loop. Each slot claims a
job with SELECT FOR UPDATE SKIP LOCKED, so any number of worker processes can
share the queue. A reconciliation sweep runs alongside every
RECONCILE_INTERVAL_SECONDS.

Usage:
    python -m app.workers.generation_worker            # run until SIGTERM/SIGINT
    python -m app.workers.generation_worker --once     # one job and one sweep
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import socket
from typing import Optional

from app.core.config import settings
from app.core.logging_config import configure_logging
from app.db.session import SessionFactory, get_async_session_context
from app.models.generation_job import GenerationJob
from app.services.delivery_gateway import build_delivery_gateway
from app.services.generation_orchestrator import GenerationOrchestrator
from app.services.job_queue_service import JobQueueService
from app.services.reconciliation_service import ReconciliationService
from app.services.telegram_client import TelegramBotClient
from app.services.tts_service import TtsService
from app.services.video_service import VideoService

logger = logging.getLogger(__name__)


class GenerationWorker:
    """Poll and execute generation jobs with a fixed number of concurrent slots."""

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        reconciler: Optional[ReconciliationService] = None,
        worker_id: Optional[str] = None,
        concurrency: Optional[int] = None,
        poll_interval: Optional[float] = None,
        reconcile_interval: Optional[float] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.reconciler = reconciler
        self.worker_id = worker_id or f"gen-{socket.gethostname()}-{os.getpid()}"
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.poll_interval = settings.WORKER_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.reconcile_interval = settings.RECONCILE_INTERVAL_SECONDS if reconcile_interval is None else reconcile_interval
        self.session_factory = session_factory
        self._stop_event = asyncio.Event()

    def request_stop(self) -> None:
        self._stop_event.set()

    async def claim(self, slot_id: str) -> Optional[GenerationJob]:
        async with get_async_session_context(self.session_factory) as session:
            return await JobQueueService(session).claim_next_job(slot_id)

    async def run_once(self, slot: int = 0) -> bool:
        """Claim and execute a single job if available."""
        job = await self.claim(f"{self.worker_id}/{slot}")
        if not job:
            return False
        await self.orchestrator.run_job(job)
        return True

    async def _wait(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def _slot_loop(self, slot: int) -> None:
        while not self._stop_event.is_set():
            try:
                processed = await self.run_once(slot)
            except Exception:
                logger.exception("Worker slot %s/%s loop error", self.worker_id, slot)
                processed = False
            if not processed:
                await self._wait(self.poll_interval)

    async def _reconcile_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.reconciler.sweep()
            except Exception:
                logger.exception("Reconciliation sweep failed")
            await self._wait(self.reconcile_interval)

    async def run_forever(self) -> None:
        """Run every slot (and the sweep) until stopped."""
        logger.info("Worker %s starting %s slot(s), poll interval %ss", self.worker_id, self.concurrency, self.poll_interval)
        loops = [self._slot_loop(slot) for slot in range(self.concurrency)]
        if self.reconciler is not None:
            loops.append(self._reconcile_loop())
        await asyncio.gather(*loops)
        logger.info("Worker %s stopped", self.worker_id)


async def run_worker(once: bool = False, concurrency: Optional[int] = None, reconcile: bool = True) -> int:
    async with TelegramBotClient() as client:
        gateway = build_delivery_gateway(client)
        orchestrator = GenerationOrchestrator(TtsService(), VideoService(), gateway)
        reconciler = ReconciliationService(gateway) if reconcile else None
        worker = GenerationWorker(orchestrator, reconciler, concurrency=concurrency)

        if once:
            processed = await worker.run_once()
            if reconciler is not None:
                await reconciler.sweep()
            logger.info("Processed %s job(s)", int(processed))
            return 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, worker.request_stop)
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass

        await worker.run_forever()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Greeting video generation worker")
    parser.add_argument("--once", action="store_true", help="Process a single job and exit")
    parser.add_argument("--concurrency", type=int, default=None, help="Concurrent job slots")
    parser.add_argument("--no-reconcile", action="store_true", help="Do not run the reconciliation sweep")
    args = parser.parse_args()

    configure_logging()
    return asyncio.run(run_worker(once=args.once, concurrency=args.concurrency, reconcile=not args.no_reconcile))


if __name__ == "__main__":
    raise SystemExit(main())
