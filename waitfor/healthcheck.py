#!/usr/bin/env python3
"""
healthcheck.py

Container healthcheck for the dependent service:
- checks that the connection settings (HOSTNAME, PORT, USERNAME, DATABASE) are present and parsable
- checks that HOSTNAME resolves and HOSTNAME:PORT accepts a TCP connection
- sends NO payload (TCP connect only), so it has no side effects on the database

Exit codes:
  0 = OK
  1 = misconfiguration / unreachable
"""
from __future__ import annotations
import socket
import sys

from .config import DatabaseConfig
from .errors import ConfigError

CONNECT_TIMEOUT = 2.0


def fail(msg):
    print(f"[HEALTHCHECK] FAIL: {msg}", file=sys.stderr)
    sys.exit(1)


def ok(msg):
    print(f"[HEALTHCHECK] OK: {msg}")
    sys.exit(0)


def check_config(environ=None) -> DatabaseConfig:
    try:
        return DatabaseConfig.from_env(environ)
    except ConfigError as e:
        fail(str(e))


def check_reachable(config: DatabaseConfig):
    host, port = config.hostname, config.port
    try:
        infos = socket.getaddrinfo(host, port, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM)
    except OSError as e:
        fail(f"DNS/addrinfo failed for {host}:{port} -> {e}")

    # first address that accepts wins
    err = None
    for family, socktype, proto, _, addr in infos:
        s = socket.socket(family, socktype, proto)
        s.settimeout(CONNECT_TIMEOUT)
        try:
            s.connect(addr)
            return
        except OSError as e:
            err = e
        finally:
            s.close()
    fail(f"cannot connect to {host}:{port} -> {err}")


def main(environ=None):
    config = check_config(environ)
    check_reachable(config)
    ok(f"{config.endpoint} TCP reachable")


if __name__ == "__main__":
    main()
