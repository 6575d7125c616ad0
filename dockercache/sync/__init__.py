"""Loops that keep the store in step with the local runtime.

The sync loop follows runtime events and periodically re-lists every
container; the GC loop expires hosts that stopped reporting.
"""

from .gc_loop import GCLoop
from .sync_loop import SweepResult, SyncLoop

__all__ = ["GCLoop", "SweepResult", "SyncLoop"]
