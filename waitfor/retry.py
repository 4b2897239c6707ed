#!/usr/bin/env python3
"""
retry.py

Connection initializer for the dependent application.

The gate only proves the port is open; the service behind it may still be
starting up or refusing logins. This module keeps trying to open an
authenticated session on a fixed interval instead of letting the process die:
- one attempt in flight at a time
- every per-attempt failure is retryable (refused, timeout, bad login)
- unbounded by default; a finite budget ends in UnclassifiedConnectError
- a stop event (wired to SIGTERM/SIGINT) interrupts the wait promptly

Run as ``waitfor-db`` it connects once with the settings from the
environment (USERNAME, PASSWORD, HOSTNAME, PORT, DATABASE) and exits 0.
"""
from __future__ import annotations
import argparse
import enum
import math
import signal
import socket
import sys
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Mapping, Optional

import psycopg2

from .config import DatabaseConfig, RetryPolicy
from .errors import (ConfigError, ConnectCancelled, TransientConnectError,
                     UnclassifiedConnectError)

Connector = Callable[[DatabaseConfig, int], Any]


def log(msg: str):
    print(f"[db] {msg}", flush=True)


class Phase(enum.Enum):
    BLOCKED = "blocked"
    TRANSPORT_READY = "transport_ready"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def postgres_connector(config: DatabaseConfig, timeout_ms: int):
    # libpq takes whole seconds
    try:
        return psycopg2.connect(
            host=config.hostname,
            port=config.port,
            user=config.username,
            password=config.password,
            dbname=config.database,
            connect_timeout=max(1, math.ceil(timeout_ms / 1000)),
        )
    except psycopg2.Error as e:
        raise TransientConnectError(str(e).strip() or type(e).__name__) from e


def tcp_connector(config: DatabaseConfig, timeout_ms: int) -> socket.socket:
    try:
        return socket.create_connection((config.hostname, config.port), timeout=timeout_ms / 1000)
    except OSError as e:
        raise TransientConnectError(f"{config.endpoint}: {e}") from e


class ConnectionRetrier:
    def __init__(self, config: DatabaseConfig, policy: RetryPolicy,
                 connector: Connector = postgres_connector,
                 stop: Optional[threading.Event] = None,
                 on_connected: Optional[Callable[[Any], None]] = None):
        self.config = config
        self.policy = policy
        self.connector = connector
        self.stop = stop if stop is not None else threading.Event()
        self.on_connected = on_connected
        self.state = Phase.TRANSPORT_READY
        self.attempts = 0
        self._run_lock = threading.Lock()
        self._bg_lock = threading.Lock()
        self._future: Optional[Future] = None

    def connect(self):
        """Block until a session is open. Returns the connector's session."""
        with self._run_lock:
            return self._loop()

    def _loop(self):
        interval = self.policy.interval_ms / 1000
        target = self.config.describe()
        self.attempts = 0
        self.state = Phase.CONNECTING
        while True:
            if self.stop.is_set():
                self.state = Phase.TRANSPORT_READY
                raise ConnectCancelled(f"stopped after {self.attempts} attempt(s)")
            self.attempts += 1
            try:
                session = self.connector(self.config, self.policy.connect_timeout_ms)
            except (TransientConnectError, OSError) as e:
                if not self.policy.unbounded and self.attempts >= self.policy.max_attempts:
                    self.state = Phase.TRANSPORT_READY
                    log(f"giving up on {target} after {self.attempts} attempt(s): {e}")
                    raise UnclassifiedConnectError(
                        f"could not connect to {target} after {self.attempts} attempt(s)") from e
                log(f"attempt {self.attempts} to {target} failed: {e}; retrying in {self.policy.interval_ms}ms")
                if self.stop.wait(interval):
                    self.state = Phase.TRANSPORT_READY
                    raise ConnectCancelled(f"stopped after {self.attempts} attempt(s)")
                continue

            self.state = Phase.CONNECTED
            log(f"connected to {target} after {self.attempts} attempt(s)")
            if self.on_connected:
                self.on_connected(session)
            return session

    def connect_in_background(self) -> Future:
        """Run connect() on a worker thread. While a run is in flight the same
        future is handed back, so callers never start a second loop."""
        with self._bg_lock:
            if self._future is not None and not self._future.done():
                return self._future
            fut: Future = Future()
            self._future = fut

        def runner():
            if not fut.set_running_or_notify_cancel():
                return
            try:
                fut.set_result(self.connect())
            except BaseException as e:
                fut.set_exception(e)
                if not isinstance(e, Exception):
                    raise

        threading.Thread(target=runner, name="db-connect", daemon=True).start()
        return fut


class Shutdown(threading.Event):
    """Stop event that remembers which signal set it."""

    signum: Optional[int] = None

    def trigger(self, signum: int):
        self.signum = signum
        self.set()


def install_stop_handlers(stop: Shutdown):
    """Turn SIGTERM/SIGINT into ``stop.trigger(signum)`` so the retry loop exits on its next check."""
    def handler(signum, frame):
        log(f"received signal {signum}, stopping")
        stop.trigger(signum)

    signal.signal(signal.SIGTERM, handler)
    signal.signal(signal.SIGINT, handler)


def init_database(environ: Optional[Mapping[str, str]] = None,
                  stop: Optional[threading.Event] = None,
                  connector: Connector = postgres_connector,
                  on_connected: Optional[Callable[[Any], None]] = None):
    """Data-access initializer: read settings once, then connect with retries."""
    config = DatabaseConfig.from_env(environ)
    policy = RetryPolicy.from_env(environ)
    log(f"connecting to {config.describe()} (interval={policy.interval_ms}ms, "
        f"max_attempts={policy.max_attempts or 'unbounded'})")
    retrier = ConnectionRetrier(config, policy, connector=connector, stop=stop,
                                on_connected=on_connected)
    return retrier.connect()


def main(argv=None) -> int:
    p = argparse.ArgumentParser(prog="waitfor-db",
                                description="Open one session to the configured database, retrying until it succeeds.")
    p.add_argument("--tcp", action="store_true",
                   help="only open a TCP session instead of a PostgreSQL login")
    args = p.parse_args(argv)

    stop = Shutdown()
    install_stop_handlers(stop)
    connector = tcp_connector if args.tcp else postgres_connector
    t0 = time.monotonic()
    try:
        session = init_database(stop=stop, connector=connector)
    except ConfigError as e:
        print(f"[db] config error: {e}", file=sys.stderr, flush=True)
        return 2
    except UnclassifiedConnectError as e:
        print(f"[db] {e}", file=sys.stderr, flush=True)
        return 1
    except ConnectCancelled as e:
        print(f"[db] {e}", file=sys.stderr, flush=True)
        return 128 + (stop.signum or signal.SIGTERM)
    session.close()
    log(f"ready after {time.monotonic() - t0:.1f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
