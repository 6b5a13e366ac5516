"""
Host side: the analysis backend boundary and the endpoints that serve the UI.
"""

from .backend import AnalysisBackend, SnapshotBackend
from .handlers import HostHandlers

__all__ = ["AnalysisBackend", "HostHandlers", "SnapshotBackend"]
