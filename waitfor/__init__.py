"""Startup gate and connection retry for containers that depend on a network service."""
from .config import DatabaseConfig, RetryPolicy, WaitConfig
from .endpoint import Endpoint, parse_endpoint
from .errors import (ConfigError, ConnectCancelled, TopologyError,
                     TransientConnectError, UnclassifiedConnectError, UsageError, WaitforError)
from .probe import ProbeResult, probe

__version__ = "0.1.0"
