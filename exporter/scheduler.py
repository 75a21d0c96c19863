# exporter/scheduler.py
import logging
import threading

log = logging.getLogger("exporter.scheduler")


class Scheduler:
    """
    Drives the poll cycle: instances first, then reservations and spots in
    the background.

    The instance fetch must finish before the spot fetch of the same tick
    starts, because spots read the cache it rebuilds. Background fetches are
    not awaited, so they may overlap the next tick's instance fetch.

    Any fetch failure ends the loop; run_forever() re-raises it and the
    caller decides how to exit.
    """

    def __init__(self, instances, reservations, spots, interval: float):
        self.instances = instances
        self.reservations = reservations
        self.spots = spots
        self.interval = interval
        self._wake = threading.Event()
        self._stopped = False
        self._error_lock = threading.Lock()
        self.error = None

    def _fail(self, name, exc):
        with self._error_lock:
            if self.error is None:
                self.error = exc
        log.error("%s fetch failed: %s", name, exc)
        self._wake.set()

    def _run_background(self, name, fetcher):
        try:
            fetcher.fetch()
        except Exception as e:
            self._fail(name, e)

    def run_once(self):
        """One tick. Returns the started background threads."""
        self.instances.fetch()
        # a background fetch may have failed while instances were polled
        if self.error is not None:
            raise self.error

        threads = []
        for name, fetcher in (("reservations", self.reservations), ("spots", self.spots)):
            t = threading.Thread(
                target=self._run_background,
                args=(name, fetcher),
                name=f"fetch-{name}",
                daemon=True,
            )
            t.start()
            threads.append(t)
        return threads

    def run_forever(self):
        log.info("Starting poll loop | interval=%ss", self.interval)
        while not self._stopped:
            self.run_once()
            self._wake.wait(self.interval)
            self._wake.clear()
            if self.error is not None:
                raise self.error
        log.info("Poll loop stopped")

    def stop(self):
        self._stopped = True
        self._wake.set()
