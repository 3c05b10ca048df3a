from .base import BaseDatabase
from .trackers import TrackerMixin
from .history import HistoryMixin
from .system import SystemMixin

__all__ = [
    "BaseDatabase",
    "TrackerMixin",
    "HistoryMixin",
    "SystemMixin",
]
