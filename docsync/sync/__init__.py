"""
Sync module: fetch document exports, detect changes, archive and publish.

The check phase downloads candidates and decides per document whether a new
version exists; the publish phase uploads the survivors to R2 and promotes
them to current while archiving the previous version.
"""

from .config import (
    SyncConfig, DocumentSource, ExportFormat, RenditionPaths,
    content_type_for, load_config
)

from .error_tracker import (
    ErrorTracker, ErrorSeverity, SyncError, SyncException, ConfigurationError,
    FetchError, HTTPStatusError, TransportError, ConversionError, ComparisonError,
    PublishError, UploadError, ArchiveError, PromotionError
)

from .comparator import files_equal
from .converters import markdown_to_html
from .fetcher import DocumentFetcher
from .publisher import R2Publisher

from .version_manager import (
    VersionManager, DocumentState, CheckResult, PublishResult, PublishStatus
)

from .orchestrator import SyncOrchestrator, SyncSummary, RenditionStatus

__all__ = [
    # Configuration
    'SyncConfig',
    'DocumentSource',
    'ExportFormat',
    'RenditionPaths',
    'content_type_for',
    'load_config',

    # Errors
    'ErrorTracker',
    'ErrorSeverity',
    'SyncError',
    'SyncException',
    'ConfigurationError',
    'FetchError',
    'HTTPStatusError',
    'TransportError',
    'ConversionError',
    'ComparisonError',
    'PublishError',
    'UploadError',
    'ArchiveError',
    'PromotionError',

    # Collaborators
    'files_equal',
    'markdown_to_html',
    'DocumentFetcher',
    'R2Publisher',

    # Versioning
    'VersionManager',
    'DocumentState',
    'CheckResult',
    'PublishResult',
    'PublishStatus',

    # Orchestration
    'SyncOrchestrator',
    'SyncSummary',
    'RenditionStatus',
]
