#!/usr/bin/env python3
"""
gate.py

Startup gate for container entrypoints:
- blocks until HOST:PORT accepts a TCP connection (optionally an HTTP 2xx/3xx)
- then exec()s the trailing command in place, so it keeps our PID, stdio and
  signal disposition and its exit code is the container's exit code
- without a trailing command just exits 0

Exit codes:
  0 = ready (or whatever the exec'd command returns)
  1 = timed out
  2 = usage error
  126/127 = trailing command not executable / not found
"""
from __future__ import annotations
import argparse
import os
import signal
import sys
import time
from typing import List, Optional, Sequence

from .config import DEFAULT_TIMEOUT, WaitConfig
from .endpoint import parse_endpoint
from .errors import UsageError
from .probe import ProbeResult, probe

USAGE = ("waitfor HOST:PORT [-q|--quiet] [-t SECONDS|--timeout=SECONDS] "
         "[--http=URL] [-- COMMAND [ARGS...]]")


def log(msg: str):
    print(f"[waitfor] {msg}", file=sys.stderr, flush=True)


def _timeout(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {raw!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError("timeout must be >= 0")
    return value


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="waitfor",
        usage=USAGE,
        allow_abbrev=False,
        description="Wait for a TCP service to accept connections, then run COMMAND.",
    )
    p.add_argument("target", metavar="HOST:PORT")
    p.add_argument("-q", "--quiet", action="store_true",
                   help="do not print the timeout notice")
    p.add_argument("-t", "--timeout", type=_timeout, default=DEFAULT_TIMEOUT, metavar="SECONDS",
                   help=f"give up after SECONDS (default {DEFAULT_TIMEOUT}, 0 = wait forever)")
    p.add_argument("--http", metavar="URL",
                   help="additionally require GET URL to answer with a status below 400")
    return p


def parse_args(argv: Sequence[str]) -> WaitConfig:
    """Parse the gate's argv. argparse exits with status 2 on bad input."""
    argv = list(argv)
    command: List[str] = []
    if "--" in argv:
        i = argv.index("--")
        command = argv[i + 1:]
        argv = argv[:i]

    parser = build_parser()
    ns = parser.parse_args(argv)
    try:
        endpoint = parse_endpoint(ns.target)
    except UsageError as e:
        parser.error(str(e))
    return WaitConfig(
        endpoint=endpoint,
        timeout_seconds=ns.timeout,
        quiet=ns.quiet,
        command=tuple(command),
        http_url=ns.http,
    )


def _raise_on_sigterm(signum, frame):
    raise SystemExit(128 + signum)


def exec_command(command: Sequence[str]) -> int:
    """Replace this process with ``command``. Returns only if exec fails."""
    sys.stdout.flush()
    sys.stderr.flush()
    # the interpreter ignores these at startup; the child must not inherit that
    for name in ("SIGPIPE", "SIGXFSZ"):
        sig = getattr(signal, name, None)
        if sig is not None:
            signal.signal(sig, signal.SIG_DFL)
    signal.signal(signal.SIGTERM, signal.SIG_DFL)
    try:
        os.execvp(command[0], list(command))
    except FileNotFoundError:
        log(f"command not found: {command[0]}")
        return 127
    except OSError as e:
        log(f"cannot execute {command[0]}: {e}")
        return 126
    return 0  # not reached


def wait(cfg: WaitConfig) -> ProbeResult:
    if cfg.timeout_seconds:
        log(f"waiting {cfg.timeout_seconds} seconds for {cfg.endpoint}")
    else:
        log(f"waiting for {cfg.endpoint} without a timeout")

    t0 = time.monotonic()
    result = probe(cfg.endpoint, cfg.timeout_seconds, http_url=cfg.http_url)
    elapsed = time.monotonic() - t0
    if result is ProbeResult.READY:
        log(f"{cfg.endpoint} is available after {elapsed:.0f} seconds")
    elif not cfg.quiet:
        log(f"timeout occurred after waiting {cfg.timeout_seconds} seconds for {cfg.endpoint}")
    return result


def run(argv: Optional[Sequence[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    try:
        cfg = parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 2

    if wait(cfg) is ProbeResult.TIMED_OUT:
        return 1
    if cfg.command:
        return exec_command(cfg.command)
    return 0


def main():
    signal.signal(signal.SIGTERM, _raise_on_sigterm)
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        sys.exit(128 + signal.SIGINT)


if __name__ == "__main__":
    main()
