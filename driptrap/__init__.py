"""driptrap - slow-drip connection tarpit.

Holds inbound TCP connections open indefinitely while dripping random
pre-banner garbage lines, wasting the time and connection slots of
automated SSH scanners.

Key components:
- linegen: deterministic garbage line generator
- session: per-connection handle
- drip: per-connection drip loop
- store: Config broadcast with hot reload
- statistics: event channel and single-owner aggregator
- signals: OS signal to control event translation
- server: accept loop and shutdown coordinator
- config: Centralized configuration management
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .config import get_config, Config

__all__ = [
    "__version__",
    "__license__",
    "get_config",
    "Config",
]
