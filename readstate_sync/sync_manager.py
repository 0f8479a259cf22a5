"""
Sync Manager - Coordinates reading-state synchronization between the vendor
database and the host metadata store
"""

import concurrent.futures
import logging
import time
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from tqdm import tqdm

from readstate_sync.exceptions import ReadingSyncError
from readstate_sync.host_state import HostStateReader, HostStateWriter, SidecarHostStore
from readstate_sync.models import (
    BookOutcome,
    OutcomeKind,
    ReadingProgress,
    SyncAction,
    SyncDecision,
    SyncPhase,
)
from readstate_sync.sync_decision import SyncDecisionMaker
from readstate_sync.vendor_db import DEFAULT_DB_TIMEOUT, SqliteBookCatalog, VendorDatabase
from readstate_sync.vendor_state import DEFAULT_WRITE_RETRY_DELAY, VendorStateReader, VendorStateWriter

OUTCOME_MARKERS = {
    OutcomeKind.NO_SYNC_NEEDED: "=",
    OutcomeKind.SYNCED_TO_HOST: "✓",
    OutcomeKind.SYNCED_TO_VENDOR: "✓",
    OutcomeKind.SKIPPED: "⏭",
    OutcomeKind.FAILED: "✗",
}


class ReadingStateSyncCoordinator:
    """
    Runs one sync pass per book: fetch both records, decide, apply the write
    on the losing side and report an outcome.

    Books are independent of each other. Any error while handling a book
    becomes a FAILED outcome for that book and the pass moves on.
    """

    def __init__(
        self,
        vendor_reader: VendorStateReader,
        host_reader: HostStateReader,
        vendor_writer: VendorStateWriter,
        host_writer: HostStateWriter,
        decision_maker: Optional[SyncDecisionMaker] = None,
        dry_run: bool = False,
        sync_to_host: bool = True,
        sync_to_vendor: bool = True,
        parallel: bool = False,
        workers: int = 3,
        show_progress: bool = False,
        book_sources: Optional[List[Callable[[], List[str]]]] = None,
    ) -> None:
        self.vendor_reader = vendor_reader
        self.host_reader = host_reader
        self.vendor_writer = vendor_writer
        self.host_writer = host_writer
        self.decision_maker = decision_maker or SyncDecisionMaker()
        self.dry_run = dry_run
        self.sync_to_host = sync_to_host
        self.sync_to_vendor = sync_to_vendor
        self.enable_parallel = parallel
        self.max_workers = max(1, int(workers))
        self.show_progress = show_progress
        self.book_sources = book_sources or []
        self.logger = logging.getLogger(__name__)

        self.logger.info(
            f"Coordinator initialized (dry_run: {dry_run}, to_host: {sync_to_host}, "
            f"to_vendor: {sync_to_vendor}, parallel: {parallel}, workers: {self.max_workers})"
        )

    @classmethod
    def from_config(
        cls, global_config: Dict[str, Any], dry_run: Optional[bool] = None, show_progress: bool = True
    ) -> "ReadingStateSyncCoordinator":
        """Build a coordinator over the SQLite vendor database and the sidecar host store"""
        database = VendorDatabase(
            global_config["vendor_db_path"],
            timeout=float(global_config.get("db_timeout_seconds", DEFAULT_DB_TIMEOUT)),
        )
        catalog = SqliteBookCatalog(database)
        host_store = SidecarHostStore(global_config["host_metadata_dir"])
        tolerance = timedelta(seconds=float(global_config.get("timestamp_tolerance_seconds", 5)))

        return cls(
            vendor_reader=VendorStateReader(database),
            host_reader=HostStateReader(host_store),
            vendor_writer=VendorStateWriter(
                database,
                catalog,
                retry_delay=float(global_config.get("write_retry_delay_seconds", DEFAULT_WRITE_RETRY_DELAY)),
            ),
            host_writer=HostStateWriter(host_store),
            decision_maker=SyncDecisionMaker(tolerance),
            dry_run=global_config.get("dry_run", False) if dry_run is None else dry_run,
            sync_to_host=global_config.get("sync_to_host", True),
            sync_to_vendor=global_config.get("sync_to_vendor", True),
            parallel=global_config.get("parallel", False),
            workers=global_config.get("workers", 3),
            show_progress=show_progress,
            book_sources=[database.list_content_ids, host_store.list_book_ids],
        )

    def discover_book_ids(self) -> List[str]:
        """Every book known to either side, in first-seen order"""
        book_ids: List[str] = []
        seen = set()
        for source in self.book_sources:
            try:
                found = source()
            except Exception as e:
                self.logger.error(f"Could not list books from {getattr(source, '__qualname__', source)}: {str(e)}")
                continue
            for book_id in found:
                if book_id not in seen:
                    seen.add(book_id)
                    book_ids.append(book_id)
        return book_ids

    def sync_all(self) -> List[BookOutcome]:
        book_ids = self.discover_book_ids()
        self.logger.info(f"Found {len(book_ids)} books across both stores")
        return self.sync_books(book_ids)

    def sync_books(self, book_ids: Iterable[str]) -> List[BookOutcome]:
        """
        Main synchronization method
        Returns one outcome per book, in the order the books were given
        """
        unique_ids = list(dict.fromkeys(book_ids))
        if not unique_ids:
            self.logger.warning("No books to sync")
            return []

        self.logger.info(f"Starting reading-state sync for {len(unique_ids)} books...")
        sync_start_time = time.time()

        if self.enable_parallel and len(unique_ids) > 1:
            outcomes = self._sync_books_parallel(unique_ids)
        else:
            outcomes = self._sync_books_sequential(unique_ids)

        for outcome in outcomes:
            self._log_outcome(outcome)

        summary = summarize(outcomes)
        self.logger.info(
            f"Sync pass completed in {time.time() - sync_start_time:.2f}s: "
            f"{summary['synced_to_host']} to host, {summary['synced_to_vendor']} to vendor, "
            f"{summary['no_sync_needed']} unchanged, {summary['skipped']} skipped, {summary['failed']} failed"
        )
        return outcomes

    def _sync_books_sequential(self, book_ids: List[str]) -> List[BookOutcome]:
        outcomes = []
        with tqdm(total=len(book_ids), desc="Syncing books", unit="book", disable=not self.show_progress) as pbar:
            for book_id in book_ids:
                pbar.set_description(f"Syncing: {book_id[:30]}{'...' if len(book_id) > 30 else ''}")
                outcome = self.sync_book(book_id)
                outcomes.append(outcome)
                pbar.set_postfix({"status": outcome.kind.value, "time": f"{outcome.duration:.2f}s"})
                pbar.update(1)
        return outcomes

    def _sync_books_parallel(self, book_ids: List[str]) -> List[BookOutcome]:
        """Process books in parallel; vendor writes stay serialized by the database write lock"""
        outcomes: List[Optional[BookOutcome]] = [None] * len(book_ids)

        with tqdm(
            total=len(book_ids), desc="Syncing books (parallel)", unit="book", disable=not self.show_progress
        ) as pbar:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                future_to_index = {
                    executor.submit(self.sync_book, book_id): index for index, book_id in enumerate(book_ids)
                }

                for future in concurrent.futures.as_completed(future_to_index):
                    index = future_to_index[future]
                    # sync_book converts every error into an outcome
                    outcome = future.result()
                    outcomes[index] = outcome
                    pbar.set_postfix({"status": outcome.kind.value, "time": f"{outcome.duration:.2f}s"})
                    pbar.update(1)

        return [outcome for outcome in outcomes if outcome is not None]

    def sync_book(self, book_id: str) -> BookOutcome:
        """Run the full read-decide-write sequence for one book"""
        book_start_time = time.time()
        phase = SyncPhase.START
        decision: Optional[SyncDecision] = None

        try:
            vendor, host = self._fetch(book_id)
            phase = self._advance(book_id, SyncPhase.FETCHED)

            decision = self.decision_maker.decide(vendor, host)
            phase = self._advance(book_id, SyncPhase.DECIDED)

            outcome = self._apply(book_id, decision)
            self._advance(book_id, outcome.phase)
            outcome.phase = self._advance(book_id, SyncPhase.DONE)

        except ReadingSyncError as e:
            outcome = BookOutcome(
                book_id, OutcomeKind.FAILED, reason=f"{type(e).__name__}: {e.detail}", decision=decision, phase=phase
            )
        except Exception as e:
            self.logger.debug(f"Unexpected error syncing {book_id}", exc_info=True)
            outcome = BookOutcome(
                book_id, OutcomeKind.FAILED, reason=f"{type(e).__name__}: {str(e)}", decision=decision, phase=phase
            )

        outcome.duration = time.time() - book_start_time
        return outcome

    def inspect_book(self, book_id: str) -> Tuple[ReadingProgress, ReadingProgress, SyncDecision]:
        """Read both sides and decide, without writing anything"""
        vendor, host = self._fetch(book_id)
        return vendor, host, self.decision_maker.decide(vendor, host)

    def _fetch(self, book_id: str) -> Tuple[ReadingProgress, ReadingProgress]:
        vendor = self.vendor_reader.read_or_default(book_id)
        host = self.host_reader.read(book_id)
        return vendor, host

    def _advance(self, book_id: str, phase: SyncPhase) -> SyncPhase:
        self.logger.debug(f"[{book_id}] -> {phase.value}")
        return phase

    def _apply(self, book_id: str, decision: SyncDecision) -> BookOutcome:
        if decision.action == SyncAction.NO_SYNC_NEEDED:
            return BookOutcome(
                book_id, OutcomeKind.NO_SYNC_NEEDED, reason=decision.reason, decision=decision, phase=SyncPhase.SKIPPED
            )

        to_host = decision.action == SyncAction.PUSH_VENDOR_TO_HOST
        target = "host" if to_host else "vendor"
        enabled = self.sync_to_host if to_host else self.sync_to_vendor

        if not enabled:
            return BookOutcome(
                book_id,
                OutcomeKind.SKIPPED,
                reason=f"Sync to {target} disabled ({decision.reason})",
                decision=decision,
                phase=SyncPhase.SKIPPED,
            )

        if self.dry_run:
            return BookOutcome(
                book_id,
                OutcomeKind.SKIPPED,
                reason=f"Dry run: would sync {decision.percent * 100:.1f}% to {target} ({decision.reason})",
                decision=decision,
                phase=SyncPhase.SKIPPED,
            )

        if to_host:
            self.host_writer.write(book_id, decision.percent, decision.status)
            kind = OutcomeKind.SYNCED_TO_HOST
        else:
            self.vendor_writer.write(book_id, decision.percent)
            kind = OutcomeKind.SYNCED_TO_VENDOR

        return BookOutcome(
            book_id,
            kind,
            reason=f"{decision.percent * 100:.1f}% to {target} ({decision.reason})",
            decision=decision,
            phase=SyncPhase.APPLIED,
        )

    def _log_outcome(self, outcome: BookOutcome) -> None:
        marker = OUTCOME_MARKERS[outcome.kind]
        message = f"{marker} {outcome.kind.value}: {outcome.book_id} - {outcome.reason}"
        if outcome.failed:
            self.logger.error(message)
        elif outcome.kind == OutcomeKind.NO_SYNC_NEEDED:
            self.logger.debug(message)
        else:
            self.logger.info(message)

    def print_timing_summary(self, outcomes: List[BookOutcome]) -> None:
        """Print a summary of per-book timing"""
        if not outcomes:
            self.logger.info("No timing data available")
            return

        self.logger.info("=" * 50)
        self.logger.info("📊 TIMING SUMMARY")
        self.logger.info("=" * 50)

        sorted_outcomes = sorted(outcomes, key=lambda o: o.duration, reverse=True)
        total_time = sum(o.duration for o in outcomes)

        for outcome in sorted_outcomes:
            percentage = (outcome.duration / total_time) * 100 if total_time > 0 else 0
            self.logger.info(f"{outcome.book_id[:30]:30} {outcome.duration:8.3f}s ({percentage:5.1f}%)")

        self.logger.info(f"{'TOTAL':30} {total_time:8.3f}s")
        self.logger.info("=" * 50)


def summarize(outcomes: List[BookOutcome]) -> Dict[str, Any]:
    """Count outcomes by kind, collecting failure reasons"""
    result: Dict[str, Any] = {
        "books_processed": len(outcomes),
        "no_sync_needed": 0,
        "synced_to_host": 0,
        "synced_to_vendor": 0,
        "skipped": 0,
        "failed": 0,
        "errors": [],
    }
    for outcome in outcomes:
        result[outcome.kind.value] += 1
        if outcome.failed:
            result["errors"].append(f"{outcome.book_id}: {outcome.reason}")
    return result
