# Hey future me - this service drives the mark-and-sweep protocol for one library scan!
# The walker (not part of this package) does:
#   1. reconciler.begin_scan()                 -> remembers the scan epoch, tags logs with a scan ID
#   2. reconciler.observe_all(files)           -> upsert every file it found (present, last_scanned=epoch)
#      reconciler.mark_present(paths)          -> cheap path-only refresh for unchanged files
#   3. reconciler.complete_scan()              -> everything NOT touched since the epoch goes stale
#   4. reconciler.expunge()  (later, optional) -> physically delete stale rows, songs first
# Readers never see a half-done scan: rows are either present from the last scan or present from
# this one, and the sweep is ONE statement.
"""Presence reconciliation service for library scans."""

import time
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from mediacatalog.config import Settings
from mediacatalog.domain.entities import (
    FORCE_RESCAN_SENTINEL,
    ExpungeCandidates,
    MediaFile,
    utc_now,
)
from mediacatalog.domain.exceptions import ScanStateError
from mediacatalog.infrastructure.observability import (
    get_module_logger,
    log_operation,
    log_slow_operation,
    set_correlation_id,
)
from mediacatalog.infrastructure.persistence import (
    AnnotationRepository,
    Database,
    IncrementalCommitter,
    MediaFileRepository,
    ensure_batch_total,
    ensure_unique_items,
    run_chunked,
)

logger = get_module_logger(__name__)

# A chunk of 30k paths taking longer than this usually means lock contention
SLOW_CHUNK_THRESHOLD_MS = 5000


class PresenceReconciler:
    """Keep the catalog's present flags in sync with periodic rescans.

    One instance per scan run. Each step opens its own transaction through
    Database.session_scope(); concurrent mark_present chunks get one session
    each.
    """

    def __init__(self, database: Database, settings: Settings) -> None:
        """Initialize reconciler.

        Args:
            database: Database providing session scopes
            settings: Application settings (scan + catalog groups)
        """
        self.database = database
        self.settings = settings
        self._scan_started_at: datetime | None = None
        self._scan_id: str | None = None

    @property
    def scan_started_at(self) -> datetime | None:
        """Epoch of the scan in progress, None between scans."""
        return self._scan_started_at

    def _media_repo(self, session: Any) -> MediaFileRepository:
        return MediaFileRepository(session, self.settings.catalog.schema_version)

    def _require_scan(self) -> datetime:
        if self._scan_started_at is None:
            raise ScanStateError("No scan in progress - call begin_scan() first")
        return self._scan_started_at

    @property
    def _chunk_concurrency(self) -> int:
        # SQLite has exactly one writer, parallel chunks would only queue on the lock
        if self.database.is_sqlite:
            return 1
        return self.settings.scan.max_concurrent_chunks

    # =========================================================================
    # SCAN LIFECYCLE
    # =========================================================================

    def begin_scan(self, started_at: datetime | None = None) -> datetime:
        """Start a scan and return its epoch.

        Args:
            started_at: Scan epoch (defaults to now, UTC)

        Returns:
            The epoch every observed row gets as last_scanned
        """
        if self._scan_started_at is not None:
            raise ScanStateError(
                f"Scan {self._scan_id} already in progress since "
                f"{self._scan_started_at.isoformat()}"
            )
        self._scan_started_at = started_at or utc_now()
        self._scan_id = set_correlation_id()
        logger.info(
            "scan.started",
            extra={
                "scan_id": self._scan_id,
                "scan_started_at": self._scan_started_at.isoformat(),
            },
        )
        return self._scan_started_at

    # Listen up, resurrection! A stale row (present=false) that shows up again gets
    # children_last_updated reset to the sentinel, so the walker re-enumerates its children
    # instead of trusting a listing from before the file disappeared.
    # The walker only knows what's on disk: play stats and comments of an existing row are
    # carried over, otherwise every rescan would reset them.
    async def _observe(self, repo: MediaFileRepository, file: MediaFile) -> MediaFile:
        scan_time = self._require_scan()
        existing = await repo.get_by_path(file.path)
        if existing is not None:
            file.play_count = existing.play_count
            file.last_played = existing.last_played
            file.comment = existing.comment
            if not existing.present:
                logger.debug("Resurrecting stale media file %s", file.path)
                file.children_last_updated = FORCE_RESCAN_SENTINEL
        file.present = True
        file.last_scanned = scan_time
        return await repo.create_or_update(file)

    async def observe(self, file: MediaFile) -> MediaFile:
        """Record one discovered file (own transaction).

        Returns:
            The file with its id attached
        """
        async with self.database.session_scope() as session:
            return await self._observe(self._media_repo(session), file)

    async def observe_all(self, files: Iterable[MediaFile]) -> int:
        """Record many discovered files, committing every scan.commit_every files.

        Returns:
            Number of files observed
        """
        self._require_scan()
        observed = 0
        async with log_operation(logger, "scan.observe_all") as result:
            async with self.database.session_scope() as session:
                repo = self._media_repo(session)
                async with IncrementalCommitter(
                    session, commit_every=self.settings.scan.commit_every
                ) as committer:
                    for file in files:
                        await self._observe(repo, file)
                        observed += 1
                        await committer.mark_progress()
                result["observed"] = observed
                result["commits"] = committer.commits_made
        return observed

    # Hey future me, this is the concurrent variant of MediaFileRepository.mark_present! Each
    # chunk runs in ITS OWN session/transaction. A failing chunk propagates; chunks that already
    # committed stay committed. Re-running the scan is the recovery path, the protocol is
    # idempotent.
    async def mark_present(
        self, paths: Sequence[str], last_scanned: datetime | None = None
    ) -> int:
        """Mark unchanged paths present in chunks.

        Args:
            paths: Paths to mark present (must already exist in the catalog)
            last_scanned: Timestamp to stamp (defaults to the scan epoch)

        Returns:
            Number of rows updated (always len(paths) on success)

        Raises:
            BatchSizeMismatchError: If the summed row count differs from len(paths)
                or paths contain duplicates
        """
        scan_time = last_scanned or self._require_scan()
        if not paths:
            return 0
        path_list = list(paths)
        ensure_unique_items("mark_present", path_list)

        async def _mark_chunk(chunk: Sequence[str]) -> int:
            started = time.monotonic()
            async with self.database.session_scope() as session:
                count = await self._media_repo(session).mark_present_chunk(
                    chunk, scan_time
                )
            log_slow_operation(
                logger,
                "scan.mark_present.chunk",
                int((time.monotonic() - started) * 1000),
                threshold_ms=SLOW_CHUNK_THRESHOLD_MS,
                paths=len(chunk),
            )
            return count

        async with log_operation(
            logger,
            "scan.mark_present",
            paths=len(path_list),
            chunk_size=self.settings.scan.present_chunk_size,
            concurrency=self._chunk_concurrency,
        ) as result:
            outcome = await run_chunked(
                path_list,
                self.settings.scan.present_chunk_size,
                _mark_chunk,
                max_concurrency=self._chunk_concurrency,
            )
            ensure_batch_total("mark_present", len(path_list), outcome.affected)
            result["chunks"] = outcome.chunks
            result["rows"] = outcome.affected
        return outcome.affected

    async def complete_scan(self) -> int:
        """Sweep every row not seen during this scan to stale and end the scan.

        Returns:
            Number of rows marked non-present
        """
        scan_time = self._require_scan()
        async with log_operation(
            logger,
            "scan.complete",
            scan_id=self._scan_id,
            scan_started_at=scan_time.isoformat(),
        ) as result:
            async with self.database.session_scope() as session:
                swept = await self._media_repo(session).mark_non_present(scan_time)
            result["swept"] = swept

        self._scan_started_at = None
        self._scan_id = None
        return swept

    # =========================================================================
    # EXPUNGE
    # =========================================================================

    async def expunge_candidates(self) -> ExpungeCandidates:
        """Ids of stale rows per type tier."""
        async with self.database.session_scope() as session:
            return await self._media_repo(session).get_expunge_candidates()

    # Yo, order matters: songs, then albums, then artist directories - dependents before their
    # parents. Stars of deleted files are cleaned up last (the FK cascades on PostgreSQL and on
    # SQLite with foreign_keys=ON, the explicit cleanup covers databases created without it).
    async def expunge(self) -> dict[str, int]:
        """Physically delete stale rows tier by tier, then orphaned stars.

        Returns:
            Dict with deleted counts per tier plus orphaned_stars
        """
        async with log_operation(logger, "scan.expunge") as result:
            async with self.database.session_scope() as session:
                repo = self._media_repo(session)
                candidates = await repo.get_expunge_candidates()
                stats = {
                    "songs": await repo.expunge_ids(candidates.songs),
                    "albums": await repo.expunge_ids(candidates.albums),
                    "directories": await repo.expunge_ids(candidates.directories),
                    "orphaned_stars": await AnnotationRepository(
                        session
                    ).delete_orphaned_stars(),
                }
            result.update(stats)
        return stats
