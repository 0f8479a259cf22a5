"""
Reading-State Sync Tool

Reconciles reading progress for the same book between an e-reader's vendor
database and a second reading application's per-book metadata store.
"""

__version__ = "1.0.0"

from .config import Config
from .host_state import HostStateReader, HostStateWriter, SidecarHostStore
from .models import BookOutcome, OutcomeKind, ReadingProgress, ReadStatus, SyncAction, SyncDecision
from .sync_decision import SyncDecisionMaker, decide
from .sync_manager import ReadingStateSyncCoordinator, summarize
from .vendor_db import SqliteBookCatalog, VendorDatabase
from .vendor_state import VendorStateReader, VendorStateWriter

__all__ = [
    "Config",
    "ReadingStateSyncCoordinator",
    "summarize",
    "SyncDecisionMaker",
    "decide",
    "VendorDatabase",
    "SqliteBookCatalog",
    "VendorStateReader",
    "VendorStateWriter",
    "SidecarHostStore",
    "HostStateReader",
    "HostStateWriter",
    "ReadingProgress",
    "ReadStatus",
    "SyncAction",
    "SyncDecision",
    "BookOutcome",
    "OutcomeKind",
]
