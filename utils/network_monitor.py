import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.config import settings

NETWORK_PROBE_JOB_ID = "network_reachability_probe"


class NetworkMonitor:
    """
    Live connectivity flag refreshed in the background.

    Readers only look at `is_connected`; the probe job keeps it current.
    Starts optimistic, so a request is attempted before the first probe lands.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        interval_seconds: int | None = None,
        probe_timeout: float = 3.0,
    ):
        self.host = host or settings.network_probe_host
        self.port = port or settings.network_probe_port
        self.interval_seconds = interval_seconds or settings.network_probe_interval_seconds
        self.probe_timeout = probe_timeout
        self.is_connected = True
        self._scheduler: AsyncIOScheduler | None = None

    def set_connected(self, connected: bool) -> None:
        connected = bool(connected)
        if connected != self.is_connected:
            logging.info("Network status changed: %s", "online" if connected else "offline")
        self.is_connected = connected

    async def probe(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.probe_timeout
            )
        except (OSError, asyncio.TimeoutError):
            self.set_connected(False)
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        self.set_connected(True)
        return True

    async def start(self) -> None:
        if self._scheduler is not None:
            return
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.probe,
            "interval",
            seconds=self.interval_seconds,
            id=NETWORK_PROBE_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        scheduler.start()
        self._scheduler = scheduler
        await self.probe()
        logging.info(
            "Network monitor started. probe=%s:%s every %ss",
            self.host,
            self.port,
            self.interval_seconds,
        )

    def stop(self) -> None:
        if self._scheduler is not None:
            try:
                self._scheduler.shutdown(wait=False)
            except Exception as e:
                logging.warning("Network monitor shutdown failed: %s", e)
            self._scheduler = None

    def get_health(self) -> dict:
        info = {
            "started": self._scheduler is not None,
            "connected": self.is_connected,
            "next_probe_time": None,
        }
        if self._scheduler is None:
            return info
        job = self._scheduler.get_job(NETWORK_PROBE_JOB_ID)
        if job and job.next_run_time:
            info["next_probe_time"] = job.next_run_time.isoformat()
        return info
