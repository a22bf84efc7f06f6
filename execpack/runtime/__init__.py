"""Runtime serving of a packaged application.

This module handles:
- Static routing of prerendered documents and assets
- Delegation of everything else to the dynamic handler
- In-flight request tracking and graceful shutdown
"""

from execpack.runtime.lifecycle import RequestCounter, ShutdownCoordinator
from execpack.runtime.router import RuntimeRouter

__all__ = ["RequestCounter", "RuntimeRouter", "ShutdownCoordinator"]
