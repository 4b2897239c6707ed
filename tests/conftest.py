import os
import socket
import subprocess
import sys
import threading
import time

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def free_port():
    """A port nothing listens on (bound once, then released)."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class DelayedListener:
    """Accepts (and immediately drops) connections on 127.0.0.1:port after ``delay`` seconds."""

    def __init__(self, port, delay=0.0):
        self.port = port
        self.delay = delay
        self.opened_at = None
        self._stop = threading.Event()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self):
        self._thread.start()
        if self.delay == 0:
            self._ready.wait(2)
        return self

    def _run(self):
        if self._stop.wait(self.delay):
            return
        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        srv.bind(("127.0.0.1", self.port))
        srv.listen(16)
        srv.settimeout(0.1)
        self.opened_at = time.monotonic()
        self._ready.set()
        try:
            while not self._stop.is_set():
                try:
                    conn, _ = srv.accept()
                except socket.timeout:
                    continue
                conn.close()
        finally:
            srv.close()

    def stop(self):
        self._stop.set()
        self._thread.join(2)


@pytest.fixture
def listener():
    started = []

    def factory(port=None, delay=0.0):
        lst = DelayedListener(port or free_port(), delay).start()
        started.append(lst)
        return lst

    yield factory
    for lst in started:
        lst.stop()


def subprocess_env(**extra):
    env = dict(os.environ)
    env["PYTHONPATH"] = ROOT + os.pathsep + env.get("PYTHONPATH", "")
    env["PYTHONUNBUFFERED"] = "1"
    env.update(extra)
    return env


def gate_cmd(*args):
    return [sys.executable, "-m", "waitfor", *args]


def run_gate(*args, timeout=30, input="", **extra_env):
    t0 = time.monotonic()
    proc = subprocess.run(gate_cmd(*args), capture_output=True, text=True, input=input,
                          env=subprocess_env(**extra_env), timeout=timeout, cwd=ROOT)
    return proc, time.monotonic() - t0
