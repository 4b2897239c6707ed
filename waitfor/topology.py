#!/usr/bin/env python3
"""
topology.py

Reads the start-ordering hints an orchestrator hands us and checks them:
  {"services": {"db": {}, "web": {"start_after": ["db"], "env": {"HOSTNAME": "db"}}}}

Only what the gate cares about is modelled (name, start_after, env). Cycles
and references to unknown services are configuration errors.
"""
from __future__ import annotations
import sys
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List

import orjson

from .errors import TopologyError


@dataclass(frozen=True)
class ServiceNode:
    name: str
    start_after: FrozenSet[str] = frozenset()
    env: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)


def parse_topology(raw: bytes) -> List[ServiceNode]:
    try:
        doc = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise TopologyError(f"invalid topology document: {e}") from e
    services = doc.get("services") if isinstance(doc, dict) else None
    if not isinstance(services, dict):
        raise TopologyError("topology needs a 'services' object")

    nodes = []
    for name, spec in services.items():
        spec = spec or {}
        if not isinstance(spec, dict):
            raise TopologyError(f"service {name!r}: expected an object")
        after = spec.get("start_after", [])
        env = spec.get("env", {})
        if not isinstance(after, list) or not all(isinstance(a, str) for a in after):
            raise TopologyError(f"service {name!r}: start_after must be a list of names")
        if not isinstance(env, dict):
            raise TopologyError(f"service {name!r}: env must be an object")
        nodes.append(ServiceNode(name, frozenset(after), {str(k): str(v) for k, v in env.items()}))
    return nodes


def load_topology(path: str) -> List[ServiceNode]:
    with open(path, "rb") as fh:
        return parse_topology(fh.read())


def start_order(nodes: Iterable[ServiceNode]) -> List[str]:
    """Topological order, ties broken by name so the result is stable."""
    by_name = {n.name: n for n in nodes}
    for n in by_name.values():
        unknown = n.start_after - set(by_name)
        if unknown:
            raise TopologyError(f"service {n.name!r} starts after unknown service(s): {', '.join(sorted(unknown))}")

    pending = {name: set(n.start_after) for name, n in by_name.items()}
    order: List[str] = []
    while pending:
        ready = sorted(name for name, deps in pending.items() if not deps)
        if not ready:
            raise TopologyError("start_after cycle among: " + ", ".join(sorted(pending)))
        for name in ready:
            order.append(name)
            del pending[name]
        for deps in pending.values():
            deps.difference_update(ready)
    return order


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("usage: waitfor-topology FILE", file=sys.stderr)
        return 2
    try:
        order = start_order(load_topology(argv[0]))
    except (TopologyError, OSError) as e:
        print(f"[topology] {e}", file=sys.stderr)
        return 1
    for name in order:
        print(name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
