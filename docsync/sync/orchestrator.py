"""
Sync Orchestration

Wires configuration, logging, error tracking, the fetcher and the publisher
into a VersionManager and runs the check and publish phases.
"""

import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional, Any

from ..config import get_logger, R2Config
from .config import SyncConfig
from .error_tracker import ErrorTracker, ConfigurationError
from .fetcher import DocumentFetcher
from .logging_manager import LoggingManager
from .publisher import R2Publisher
from .version_manager import (
    VersionManager, CheckResult, PublishResult, DocumentState, Fetcher, Publisher,
)

logger = get_logger(__name__)


@dataclass
class SyncSummary:
    """Summary of a sync run."""
    started_at: str
    total_documents: int
    changed_documents: int = 0
    unchanged_documents: int = 0
    undecided_documents: int = 0
    candidates_kept: int = 0
    fetch_failures: int = 0
    promoted: int = 0
    publish_failures: int = 0
    processing_time: float = 0.0
    check_results: List[CheckResult] = field(default_factory=list)
    publish_results: List[PublishResult] = field(default_factory=list)
    error_report: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RenditionStatus:
    """What is on disk for one (document, format)."""
    lang: str
    format: str
    has_current: bool
    has_candidate: bool
    archives: int


class SyncOrchestrator:
    """
    Runs the synchronization of the configured documents.

    The publisher is only built when the publish phase is requested, so a
    check-only run needs no R2 credentials.
    """

    def __init__(self, config: SyncConfig, fetcher: Optional[Fetcher] = None, publisher: Optional[Publisher] = None,
                 r2_config: Optional[R2Config] = None, now: Optional[datetime] = None, configure_logging: bool = True):
        self.config = config
        if configure_logging:
            self.logging_manager = LoggingManager(log_level=config.log_level, log_file=config.log_file, log_format=config.log_format)
        self.error_tracker = ErrorTracker()
        self.fetcher = fetcher or DocumentFetcher(url_template=config.export_url_template, timeout=config.fetch_timeout)
        self._publisher = publisher
        self._r2_config = r2_config
        self.version_manager = VersionManager(
            config, self.fetcher, publisher=publisher, error_tracker=self.error_tracker, now=now
        )

    def ensure_publisher(self) -> Publisher:
        """
        Return the publisher, building it from the environment on first use.

        Raises:
            ConfigurationError: If the R2 settings are missing
        """
        if self._publisher is None:
            try:
                r2_config = self._r2_config or R2Config.from_environment()
            except ValueError as e:
                raise ConfigurationError(
                    str(e), recovery_suggestion="Set the CLOUDFLARE_* variables in the environment or in .env"
                )
            self._publisher = R2Publisher(r2_config)
            self.version_manager.publisher = self._publisher
        return self._publisher

    def run(self, check: bool = True, publish: bool = True) -> SyncSummary:
        """
        Run the requested phases and return the summary.

        Configuration problems surface before any file or network I/O.
        """
        if publish:
            self.ensure_publisher()

        start = time.time()
        summary = SyncSummary(
            started_at=self.version_manager.run_started.isoformat(timespec='seconds'),
            total_documents=len(self.config.documents),
        )
        logger.info(f"Sync started at {summary.started_at}")

        if check:
            summary.check_results = self.version_manager.check_all()
        if publish:
            logger.info("=> Uploading new files and managing local versions")
            summary.publish_results = self.version_manager.publish_all()

        self._fill_summary(summary)
        summary.processing_time = time.time() - start
        summary.error_report = self.error_tracker.generate_report()
        self._log_summary(summary)
        return summary

    def _fill_summary(self, summary: SyncSummary) -> None:
        for result in summary.check_results:
            if result.state == DocumentState.CHANGED:
                summary.changed_documents += 1
            elif result.state == DocumentState.UNCHANGED:
                summary.unchanged_documents += 1
            else:
                summary.undecided_documents += 1
            summary.candidates_kept += len(result.kept)
            summary.fetch_failures += len(result.failed)
        for result in summary.publish_results:
            if result.promoted:
                summary.promoted += 1
            else:
                summary.publish_failures += 1

    def _log_summary(self, summary: SyncSummary) -> None:
        if summary.check_results:
            logger.info(
                f"Checked {summary.total_documents} documents: {summary.changed_documents} changed, "
                f"{summary.unchanged_documents} unchanged, {summary.undecided_documents} undecided, "
                f"{summary.fetch_failures} fetch failures"
            )
        if summary.publish_results:
            logger.info(f"Published {summary.promoted} renditions, {summary.publish_failures} failed")
        total_errors = summary.error_report.get('total_errors', 0)
        if self.error_tracker.has_critical_errors():
            logger.critical("Local renditions may be inconsistent; check the error report before the next run")
        if total_errors:
            logger.warning(f"Run finished with {total_errors} reported errors", extra={'details': summary.error_report})

    def rendition_status(self) -> List[RenditionStatus]:
        """List what is on disk for every configured (document, format)."""
        rows = []
        for document in self.config.documents:
            for fmt in self.config.publish_formats():
                paths = self.config.rendition_paths(document.lang, fmt)
                rows.append(RenditionStatus(
                    lang=document.lang,
                    format=fmt.value,
                    has_current=paths.current.exists(),
                    has_candidate=paths.candidate.exists(),
                    archives=len(paths.list_archives()),
                ))
        return rows

