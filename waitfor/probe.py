"""
probe.py

Transport-level readiness check:
- one bare TCP connect per one-second tick (no payload exchange)
- optional HTTP GET on top of it when a health URL is configured
- ticks are pinned to a monotonic schedule, a slow attempt eats into its own
  tick instead of shifting the next one
- timeout_seconds == 0 polls until the endpoint answers
"""
from __future__ import annotations
import enum
import socket
import time
from typing import Callable, Optional

import requests

from .endpoint import Endpoint

TICK_SECONDS = 1.0
# floor for the per-attempt timeout when a tick is nearly used up
MIN_ATTEMPT_TIMEOUT = 0.05


class ProbeResult(enum.Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"


def tcp_attempt(endpoint: Endpoint, timeout: float) -> bool:
    try:
        s = socket.create_connection((endpoint.host, endpoint.port), timeout=timeout)
    except OSError:
        return False
    s.close()
    return True


def http_attempt(url: str, timeout: float) -> bool:
    try:
        r = requests.get(url, timeout=timeout, allow_redirects=False)
    except requests.RequestException:
        return False
    return r.status_code < 400


def make_attempt(http_url: Optional[str] = None, clock=time.monotonic) -> Callable[[Endpoint, float], bool]:
    if not http_url:
        return tcp_attempt

    def attempt(endpoint: Endpoint, timeout: float) -> bool:
        t0 = clock()
        if not tcp_attempt(endpoint, timeout):
            return False
        left = max(timeout - (clock() - t0), MIN_ATTEMPT_TIMEOUT)
        return http_attempt(http_url, left)

    return attempt


def probe(endpoint: Endpoint, timeout_seconds: int, *,
          http_url: Optional[str] = None,
          on_tick: Optional[Callable[[int], None]] = None,
          attempt: Optional[Callable[[Endpoint, float], bool]] = None,
          sleep=time.sleep, clock=time.monotonic) -> ProbeResult:
    """Poll ``endpoint`` once per tick until it accepts a connection.

    ``on_tick(n)`` is called after the n-th failed attempt. Signals are not
    caught here; KeyboardInterrupt/SystemExit raised by a handler during the
    tick sleep propagate to the caller.
    """
    if timeout_seconds < 0:
        raise ValueError("timeout_seconds must be >= 0")
    if attempt is None:
        attempt = make_attempt(http_url, clock)

    start = clock()
    tick = 0
    while timeout_seconds == 0 or tick < timeout_seconds:
        tick_end = start + (tick + 1) * TICK_SECONDS
        budget = min(TICK_SECONDS, max(tick_end - clock(), MIN_ATTEMPT_TIMEOUT))
        if attempt(endpoint, budget):
            return ProbeResult.READY
        tick += 1
        if on_tick:
            on_tick(tick)
        now = clock()
        if now < tick_end:
            sleep(tick_end - now)
        else:
            # attempt overran its tick (slow DNS); skip the ticks it consumed
            tick = max(tick, int((now - start) // TICK_SECONDS))
    return ProbeResult.TIMED_OUT
