"""External analyzer adapters."""

from chainaudit.analysis.adapters.base import ProcessAdapter, kill_process_tree, spawn
from chainaudit.analysis.adapters.mythril import MythrilAdapter
from chainaudit.analysis.adapters.slither import SlitherAdapter

__all__ = [
    "MythrilAdapter",
    "ProcessAdapter",
    "SlitherAdapter",
    "kill_process_tree",
    "spawn",
]
