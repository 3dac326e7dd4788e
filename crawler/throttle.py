import threading
import time
import logging

from crawler.config import REQUEST_DELAY_SECONDS
from crawler.url_utils import host_key

logger = logging.getLogger("monitor.throttle")


class HostThrottle:
    """
    Per-host request cadence.

    Every host gets its own lock and "next allowed" timestamp, so workers
    crawling different hosts never wait on each other while requests to one
    host stay at least `min_interval` seconds apart. A 429 answer pauses the
    whole host via pause().
    """

    def __init__(self, min_interval=REQUEST_DELAY_SECONDS, clock=time.monotonic, sleep=time.sleep):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._next_slot = {}      # host -> monotonic timestamp
        self._host_locks = {}     # host -> Lock
        self._registry_lock = threading.Lock()

    def _lock_for(self, host):
        with self._registry_lock:
            lock = self._host_locks.get(host)
            if lock is None:
                lock = threading.Lock()
                self._host_locks[host] = lock
            return lock

    def wait(self, url):
        """Block until a request to the host of `url` is allowed, then reserve the slot."""
        host = host_key(url)
        if not host:
            return 0.0
        # Holding the host lock while sleeping queues callers for the same host in order
        with self._lock_for(host):
            now = self._clock()
            ready_at = self._next_slot.get(host, now)
            delay = max(0.0, ready_at - now)
            if delay > 0:
                logger.debug(f"[THROTTLE] {host}: waiting {delay:.2f}s")
                self._sleep(delay)
                now = now + delay
            self._next_slot[host] = now + self.min_interval
            return delay

    def pause(self, url, seconds=5):
        """Push the next slot of the host `seconds` into the future (e.g. after HTTP 429)."""
        host = host_key(url)
        if not host:
            return
        with self._lock_for(host):
            until = self._clock() + seconds
            if until > self._next_slot.get(host, 0):
                self._next_slot[host] = until
        logger.warning(f"[THROTTLE] Host {host} asked us to slow down. Pausing for {seconds}s.")

    def remaining_pause(self, url):
        """Seconds until the host of `url` may be contacted again."""
        host = host_key(url)
        if not host:
            return 0
        with self._lock_for(host):
            return max(0, self._next_slot.get(host, 0) - self._clock())
