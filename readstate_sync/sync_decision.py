"""
Sync Decision - Chooses a sync direction from the two sides' progress records
"""

import logging
from datetime import timedelta
from typing import Optional

from readstate_sync.models import ReadingProgress, ReadStatus, SyncDecision
from readstate_sync.utils import to_vendor_percent

# Two timestamps closer than this are the same moment: the vendor stores
# whole seconds while file modification times are finer grained
DEFAULT_TIMESTAMP_TOLERANCE = timedelta(seconds=5)

logger = logging.getLogger(__name__)


def percents_match(vendor: ReadingProgress, host: ReadingProgress) -> bool:
    """Compare at vendor resolution (whole percent)"""
    return to_vendor_percent(vendor.percent) == to_vendor_percent(host.percent)


def decide(
    vendor: ReadingProgress,
    host: ReadingProgress,
    tolerance: Optional[timedelta] = None,
) -> SyncDecision:
    """
    Decide which side wins for one book

    Ambiguous cases resolve to NoSyncNeeded so a stale record can never
    overwrite a more advanced position.
    """
    if tolerance is None:
        tolerance = DEFAULT_TIMESTAMP_TOLERANCE

    if percents_match(vendor, host):
        return SyncDecision.no_sync(f"Both sides at {to_vendor_percent(host.percent)}%")

    if vendor.is_complete and host.percent >= 1.0:
        return SyncDecision.no_sync("Both sides complete")

    delta = vendor.timestamp - host.timestamp
    if abs(delta) <= tolerance:
        return SyncDecision.no_sync(
            f"Timestamps within {tolerance.total_seconds():.0f}s "
            f"(vendor {vendor.percent * 100:.1f}%, host {host.percent * 100:.1f}%)"
        )

    if delta > timedelta(0):
        if vendor.status == ReadStatus.UNREAD and vendor.percent == 0.0:
            return SyncDecision.no_sync("Vendor book never opened")
        return SyncDecision.push_vendor_to_host(
            vendor.percent,
            vendor.status,
            reason=f"Vendor newer by {delta.total_seconds():.0f}s",
        )

    if delta < timedelta(0):
        return SyncDecision.push_host_to_vendor(
            host.percent,
            reason=f"Host newer by {(-delta).total_seconds():.0f}s",
        )

    return SyncDecision.no_sync("Direction tie")


class SyncDecisionMaker:
    """Holds the tunable tolerance and logs each decision"""

    def __init__(self, tolerance: Optional[timedelta] = None):
        self.tolerance = tolerance if tolerance is not None else DEFAULT_TIMESTAMP_TOLERANCE

    def decide(self, vendor: ReadingProgress, host: ReadingProgress) -> SyncDecision:
        decision = decide(vendor, host, self.tolerance)
        logger.debug(
            f"Decision for {vendor.book_id}: {decision.action.value} - {decision.reason} "
            f"(vendor {vendor.percent * 100:.1f}% @ {vendor.timestamp.isoformat()}, "
            f"host {host.percent * 100:.1f}% @ {host.timestamp.isoformat()})"
        )
        return decision
