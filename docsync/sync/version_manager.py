"""
Change detection and version promotion for exported documents.

A run has two phases:

1. Check: every format of every document is fetched into a candidate file.
   Candidates left by an earlier run are removed first. The first
   successfully fetched format of a document (its representative)
   is compared with the current rendition. If it is identical the candidate is
   discarded and the remaining formats are not fetched at all; otherwise every
   format is kept without further comparison.
2. Publish: every candidate left on disk is uploaded, the current rendition is
   moved to a timestamped archive and the candidate becomes current.

Each (document, format) failure is reported to the ErrorTracker and the run
goes on with the next item.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol, Union

from ..config import get_logger, ARCHIVE_TIMESTAMP_FORMAT
from .comparator import files_equal
from .config import SyncConfig, DocumentSource, ExportFormat, RenditionPaths
from .converters import markdown_to_html
from .error_tracker import (
    ErrorTracker, ErrorSeverity, SyncException, ConfigurationError, FetchError,
    ArchiveError, PromotionError, PublishError,
)

logger = get_logger(__name__)


class Fetcher(Protocol):
    def fetch(self, document_id: str, fmt: ExportFormat) -> bytes: ...


class Publisher(Protocol):
    def upload(self, local_path: Union[str, Path], remote_key: str) -> None: ...


class DocumentState(str, Enum):
    """Decision state of one document during the check phase."""
    UNCHECKED = "unchecked"  # representative format not compared yet
    UNCHANGED = "unchanged"  # representative identical to current, skip the rest
    CHANGED = "changed"  # new version, keep every format


class PublishStatus(str, Enum):
    PROMOTED = "promoted"
    UPLOAD_FAILED = "upload_failed"
    ARCHIVE_FAILED = "archive_failed"
    PROMOTION_FAILED = "promotion_failed"


@dataclass
class CheckResult:
    """Outcome of the check phase for one document."""
    lang: str
    state: DocumentState = DocumentState.UNCHECKED
    representative: Optional[ExportFormat] = None
    kept: List[ExportFormat] = field(default_factory=list)
    failed: List[ExportFormat] = field(default_factory=list)
    skipped: List[ExportFormat] = field(default_factory=list)
    compared: bool = False


@dataclass
class PublishResult:
    """Outcome of publishing one rendition."""
    lang: str
    format: ExportFormat
    status: PublishStatus
    remote_key: str
    archive_path: Optional[Path] = None
    error_message: Optional[str] = None

    @property
    def promoted(self) -> bool:
        return self.status == PublishStatus.PROMOTED


def rendition_id(lang: str, fmt: ExportFormat) -> str:
    return f"{lang}/{fmt.value}"


class VersionManager:
    """Runs the check and publish phases over the configured documents."""

    def __init__(self, config: SyncConfig, fetcher: Fetcher, publisher: Optional[Publisher] = None,
                 error_tracker: Optional[ErrorTracker] = None, now: Optional[datetime] = None):
        self.config = config
        self.fetcher = fetcher
        self.publisher = publisher
        self.error_tracker = error_tracker or ErrorTracker()
        self.run_started = now or datetime.now()

    @property
    def archive_stamp(self) -> str:
        return self.run_started.strftime(ARCHIVE_TIMESTAMP_FORMAT)

    def paths(self, lang: str, fmt: ExportFormat) -> RenditionPaths:
        return self.config.rendition_paths(lang, fmt)

    # Check phase

    def check_all(self) -> List[CheckResult]:
        return [self.check_document(document) for document in self.config.documents]

    def check_document(self, document: DocumentSource) -> CheckResult:
        """
        Fetch the formats of one document and decide whether it changed.

        The first format that is fetched successfully is the representative;
        a failed fetch leaves the decision to the next format.
        """
        logger.info(f"=> {document.lang}")
        result = CheckResult(lang=document.lang)

        for position, fmt in enumerate(self.config.formats):
            if result.state == DocumentState.UNCHANGED:
                result.skipped = list(self.config.formats[position:])
                break

            self._clear_leftover(document.lang, fmt)
            if not self._fetch_candidate(document, fmt):
                result.failed.append(fmt)
                continue

            if result.state == DocumentState.UNCHECKED:
                result.representative = fmt
                result.state = self._decide(document.lang, fmt, result)
                if result.state == DocumentState.UNCHANGED:
                    continue

            result.kept.append(fmt)

        for fmt in result.skipped:
            self._clear_leftover(document.lang, fmt)

        return result

    def _fetch_candidate(self, document: DocumentSource, fmt: ExportFormat) -> bool:
        paths = self.paths(document.lang, fmt)
        try:
            content = self.fetcher.fetch(document.document_id, fmt)
        except FetchError as e:
            logger.error(f"Error fetching {rendition_id(document.lang, fmt)}: {e.message}")
            self.error_tracker.report(
                e.message,
                source_id=rendition_id(document.lang, fmt),
                details={"document_id": document.document_id, "status_code": getattr(e, 'status_code', None)},
                recovery_suggestion=e.recovery_suggestion,
            )
            return False

        try:
            paths.candidate.parent.mkdir(parents=True, exist_ok=True)
            paths.candidate.write_bytes(content)
        except OSError as e:
            message = f"Failed to write candidate {paths.candidate}: {e}"
            logger.error(message)
            self.error_tracker.report(message, source_id=rendition_id(document.lang, fmt))
            return False

        logger.info(f"Saved {len(content)} bytes to {paths.candidate}")

        if fmt == ExportFormat.MD and self.config.convert_markdown:
            self._render_html(document.lang, content)

        return True

    def _render_html(self, lang: str, content: bytes) -> None:
        paths = self.paths(lang, ExportFormat.HTML)
        try:
            paths.candidate.write_bytes(markdown_to_html(content))
        except SyncException as e:
            logger.error(f"Error converting {rendition_id(lang, ExportFormat.MD)} to HTML: {e.message}")
            self.error_tracker.report_exception(e, details={"rendition": rendition_id(lang, ExportFormat.HTML)})
            return
        except OSError as e:
            message = f"Failed to write candidate {paths.candidate}: {e}"
            logger.error(message)
            self.error_tracker.report(message, source_id=rendition_id(lang, ExportFormat.HTML))
            return
        logger.info(f"Rendered {paths.candidate}")

    def _decide(self, lang: str, fmt: ExportFormat, result: CheckResult) -> DocumentState:
        paths = self.paths(lang, fmt)

        if not paths.current.exists():
            logger.info(f"No existing file {paths.current}. Keeping {paths.candidate} and continuing with other formats.")
            return DocumentState.CHANGED

        result.compared = True
        try:
            identical = files_equal(paths.candidate, paths.current)
        except SyncException as e:
            logger.error(f"Error comparing files {paths.candidate} and {paths.current}: {e.message}")
            self.error_tracker.report(
                e.message,
                source_id=rendition_id(lang, fmt),
                recovery_suggestion="The document is republished; check file permissions in the output directory",
            )
            return DocumentState.CHANGED

        if not identical:
            logger.info(f"Files {paths.candidate} and {paths.current} are different. Keeping both and continuing with other formats.")
            return DocumentState.CHANGED

        logger.info(f"Files {paths.candidate} and {paths.current} are identical. Deleting {paths.candidate} and skipping remaining formats.")
        self._discard(lang, fmt)
        return DocumentState.UNCHANGED

    def _with_companion(self, fmt: ExportFormat) -> List[ExportFormat]:
        if fmt == ExportFormat.MD and self.config.convert_markdown:
            return [fmt, ExportFormat.HTML]
        return [fmt]

    def _discard(self, lang: str, fmt: ExportFormat) -> None:
        for each in self._with_companion(fmt):
            candidate = self.paths(lang, each).candidate
            try:
                candidate.unlink(missing_ok=True)
            except OSError as e:
                message = f"Failed to delete file {candidate}: {e}"
                logger.error(message)
                self.error_tracker.report(message, source_id=rendition_id(lang, each), severity=ErrorSeverity.WARNING)

    def _clear_leftover(self, lang: str, fmt: ExportFormat) -> None:
        """Remove a candidate left by an earlier run; only bytes fetched in this run are published."""
        leftovers = [self.paths(lang, each).candidate for each in self._with_companion(fmt)]
        leftovers = [candidate for candidate in leftovers if candidate.exists()]
        for candidate in leftovers:
            logger.warning(f"Removing leftover candidate {candidate} from an earlier run")
        if leftovers:
            self._discard(lang, fmt)

    # Publish phase

    def publish_all(self) -> List[PublishResult]:
        """Publish and promote every candidate found on disk."""
        if self.publisher is None:
            raise ConfigurationError("No publisher configured for the publish phase")

        results = []
        for document in self.config.documents:
            for fmt in self.config.publish_formats():
                if not self.paths(document.lang, fmt).candidate.exists():
                    continue
                results.append(self.publish_rendition(document.lang, fmt))
        return results

    def publish_rendition(self, lang: str, fmt: ExportFormat) -> PublishResult:
        """
        Upload one candidate, archive the current rendition and promote the candidate.

        The candidate stays on disk when any step fails, so the next run sees it again.
        """
        if self.publisher is None:
            raise ConfigurationError("No publisher configured for the publish phase")

        paths = self.paths(lang, fmt)
        remote_key = self.config.remote_key(lang, fmt)
        result = PublishResult(lang=lang, format=fmt, status=PublishStatus.UPLOAD_FAILED, remote_key=remote_key)

        try:
            self.publisher.upload(paths.candidate, remote_key)
        except PublishError as e:
            return self._failed(result, PublishStatus.UPLOAD_FAILED, e, f"Error uploading {paths.candidate}")

        try:
            result.archive_path = self._archive(paths)
        except ArchiveError as e:
            return self._failed(result, PublishStatus.ARCHIVE_FAILED, e, f"Error archiving {paths.current}")

        try:
            self._promote(paths, result.archive_path)
        except PromotionError as e:
            return self._failed(result, PublishStatus.PROMOTION_FAILED, e, f"Error promoting {paths.candidate}")

        result.status = PublishStatus.PROMOTED
        logger.info(f"Successfully processed {paths.candidate}")
        return result

    def _failed(self, result: PublishResult, status: PublishStatus, exc: SyncException, context: str) -> PublishResult:
        logger.error(f"{context}: {exc.message}")
        self.error_tracker.report(
            exc.message,
            source_id=rendition_id(result.lang, result.format),
            details={"remote_key": result.remote_key, "stage": status.value},
            recovery_suggestion=exc.recovery_suggestion,
        )
        result.status = status
        result.error_message = exc.message
        return result

    def _archive(self, paths: RenditionPaths) -> Optional[Path]:
        if not paths.current.exists():
            return None

        archive = paths.archive(self.archive_stamp)
        if archive.exists():
            raise ArchiveError(
                f"Archive {archive} already exists",
                recovery_suggestion="Runs less than a minute apart share an archive name; the candidate is kept, run `docsync publish` again after a minute",
            )

        logger.info(f"Archiving old file {paths.current} to {archive}")
        try:
            paths.current.rename(archive)
        except OSError as e:
            raise ArchiveError(f"Failed to archive {paths.current} to {archive}: {e}")
        return archive

    def _promote(self, paths: RenditionPaths, archive: Optional[Path]) -> None:
        logger.info(f"Promoting new file {paths.candidate} to {paths.current}")
        try:
            paths.candidate.replace(paths.current)
        except OSError as e:
            if archive is not None:
                self._restore(archive, paths.current)
            raise PromotionError(f"Failed to promote {paths.candidate} to {paths.current}: {e}")

    def _restore(self, archive: Path, current: Path) -> None:
        try:
            archive.rename(current)
            logger.info(f"Restored {archive} to {current}")
        except OSError as e:
            message = f"Failed to restore {archive} to {current}: {e}"
            logger.critical(message)
            self.error_tracker.report(message, source_id=str(current), severity=ErrorSeverity.CRITICAL)
