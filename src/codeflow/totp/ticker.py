"""
One-second TOTP refresh scheduler.

A TotpTicker holds a set of Base32 secrets and, on every tick, reports the
seconds remaining in the current period. Codes are recomputed only when the
period counter changes between two ticks, which handles late or coalesced
timer delivery: a tick arriving several seconds late still sees the counter
move and refreshes exactly once.

The tick logic (``tick``) is independent of the timer thread started by
``start``, so tests drive it with a simulated clock.
"""

import time
import logging
import threading

from ..errors import InvalidSecret
from . import otp

logger = logging.getLogger(__name__)

ERROR_CODE = "Error"


class TotpTicker:
    """
    Periodic TOTP refresher.

    The callback receives ``(codes, seconds_remaining, refreshed)`` where
    ``codes`` maps each key to its current code (or "Error" when the secret
    cannot be decoded) and ``refreshed`` is True when codes were recomputed
    on this tick.

    After ``stop()`` the callback is never invoked again.
    """

    def __init__(self, secrets, callback, clock=time.time, interval=1.0):
        """
        Args:
            secrets (dict): Mapping of key -> Base32 secret
            callback: Called as callback(codes, seconds_remaining, refreshed)
            clock: Zero-argument function returning Unix seconds
            interval (float): Seconds between ticks when running threaded
        """
        self.secrets = dict(secrets)
        self.callback = callback
        self.clock = clock
        self.interval = interval
        self.codes = {}
        self._last_counter = None
        self._stopped = threading.Event()
        self._lock = threading.RLock()
        self._thread = None

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_stopped(self):
        return self._stopped.is_set()

    def _compute(self, now):
        codes = {}
        for key, secret in self.secrets.items():
            try:
                codes[key] = otp.totp(secret, now)
            except InvalidSecret:
                logger.error(f"Failed to generate TOTP for '{key}'")
                codes[key] = ERROR_CODE
        return codes

    def tick(self):
        """
        Run one refresh step against the clock.

        Returns:
            bool: True if codes were recomputed, False if unchanged or stopped
        """
        with self._lock:
            if self._stopped.is_set():
                return False
            now = self.clock()
            counter = otp.counter_at(now)
            refreshed = counter != self._last_counter
            if refreshed:
                self.codes = self._compute(now)
                self._last_counter = counter
            remaining = otp.time_remaining(now)
            self.callback(dict(self.codes), remaining, refreshed)
        return refreshed

    def _run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.tick()
            except Exception:
                logger.exception("TOTP refresh callback failed")

    def start(self):
        """Emit an initial tick, then tick every interval on a daemon thread."""
        if self.is_running:
            return
        self.tick()
        self._thread = threading.Thread(target=self._run, name="totp-ticker", daemon=True)
        self._thread.start()

    def stop(self, timeout=None):
        """Cancel the ticker; no callback runs after this returns."""
        self._stopped.set()
        # Wait for an in-flight tick to finish
        with self._lock:
            pass
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
