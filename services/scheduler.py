"""
Background scheduler for the periodic account sweep
"""
import asyncio
import concurrent.futures
import logging
import threading
import time
from threading import Lock

import schedule

import config

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Runs ``sync_service.sync_all_accounts`` every SYNC_INTERVAL_MINUTES.

    The ``schedule`` loop lives on a daemon thread and only keeps time; each
    sweep is submitted to the application's event loop, where the Motor
    client and the HTTP clients live.
    """

    def __init__(self, sync_service, loop: asyncio.AbstractEventLoop, interval_minutes: int = None):
        self.sync_service = sync_service
        self.loop = loop
        self.interval_minutes = interval_minutes or config.SYNC_INTERVAL_MINUTES
        self.scheduler = schedule.Scheduler()
        self.scheduler_lock = Lock()
        self.scheduler_running = False
        self.scheduler_thread = None
        self._pending_future = None

    def start(self):
        """Start the scheduler"""
        with self.scheduler_lock:
            if self.scheduler_thread is None or not self.scheduler_thread.is_alive():
                logger.info(f"Starting sync scheduler, every {self.interval_minutes} minutes")
                self.scheduler.clear()
                self.scheduler.every(self.interval_minutes).minutes.do(self._scheduled_sync)
                self.scheduler_running = True
                self.scheduler_thread = threading.Thread(target=self._run_scheduler, daemon=True)
                self.scheduler_thread.start()
            else:
                logger.info("Scheduler already running")

    def stop(self, timeout: float = 5):
        """Stop the scheduler, cancel a sweep in flight and wait for the thread to exit"""
        logger.info("Stopping sync scheduler")
        with self.scheduler_lock:
            self.scheduler_running = False
            self.scheduler.clear()
            pending = self._pending_future
            thread = self.scheduler_thread
        if pending is not None and not pending.done():
            pending.cancel()
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"Sync scheduler thread did not exit within {timeout} seconds")

    def is_running(self):
        with self.scheduler_lock:
            return bool(self.scheduler_running and self.scheduler_thread and self.scheduler_thread.is_alive())

    def _run_scheduler(self):
        while True:
            with self.scheduler_lock:
                if not self.scheduler_running:
                    break
            self.scheduler.run_pending()
            time.sleep(1)
        logger.info("Sync scheduler stopped")

    def _scheduled_sync(self):
        """Submit one sweep to the event loop and wait for it"""
        logger.info("Cron: Running scheduled calendar sync...")
        future = asyncio.run_coroutine_threadsafe(self.sync_service.sync_all_accounts(), self.loop)
        with self.scheduler_lock:
            self._pending_future = future
        try:
            future.result()
        except concurrent.futures.CancelledError:
            logger.info("Cron: Scheduled calendar sync cancelled")
        except Exception as e:
            # Don't let sweep errors kill the scheduler thread
            logger.error(f"Cron: Error during scheduled calendar sync: {str(e)}")
        finally:
            with self.scheduler_lock:
                if self._pending_future is future:
                    self._pending_future = None
