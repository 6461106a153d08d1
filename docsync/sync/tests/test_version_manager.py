"""
Tests for change detection and version promotion.

The fetcher and publisher are replaced by in-memory fakes; everything else
(comparison, archive and promotion) runs against a temporary directory.
"""

import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from ..config import SyncConfig, DocumentSource, ExportFormat
from ..error_tracker import ErrorTracker, ComparisonError, ConfigurationError, HTTPStatusError, TransportError
from ..version_manager import VersionManager, DocumentState, PublishStatus
from .fakes import FakeFetcher, FakePublisher, exports

NOW = datetime(2024, 1, 15, 10, 30)
STAMP = "240115-1030"


class TestCheckPhase:
    """Test the check phase decisions."""

    @pytest.fixture
    def temp_dir(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir)

    @pytest.fixture
    def config(self, temp_dir):
        return SyncConfig(
            documents=[DocumentSource(lang="en", document_id="doc-en")],
            output_directory=str(temp_dir),
        )

    def test_first_run_keeps_every_format_without_comparison(self, temp_dir, config):
        fetcher = FakeFetcher(exports("doc-en", b"# Resume\n"))
        manager = VersionManager(config, fetcher, now=NOW)

        with patch("docsync.sync.version_manager.files_equal") as mock_equal:
            result = manager.check_document(config.documents[0])
            mock_equal.assert_not_called()

        assert result.state == DocumentState.CHANGED
        assert result.representative == ExportFormat.PDF
        assert result.compared is False
        assert result.kept == config.formats
        for fmt in ("pdf", "docx", "txt", "odt", "md", "html"):
            assert (temp_dir / f"en-new.{fmt}").exists()

    def test_identical_representative_discards_candidate_and_skips_rest(self, temp_dir, config):
        (temp_dir / "en.pdf").write_bytes(b"A")
        fetcher = FakeFetcher(exports("doc-en", b"A"))
        manager = VersionManager(config, fetcher, now=NOW)

        result = manager.check_document(config.documents[0])

        assert result.state == DocumentState.UNCHANGED
        assert result.compared is True
        assert result.kept == []
        assert result.skipped == [ExportFormat.DOCX, ExportFormat.TXT, ExportFormat.ODT, ExportFormat.MD]
        assert fetcher.calls == [("doc-en", "pdf")]
        assert not (temp_dir / "en-new.pdf").exists()
        assert (temp_dir / "en.pdf").read_bytes() == b"A"
        # Skip propagation: no candidates for the other formats
        assert sorted(p.name for p in temp_dir.iterdir()) == ["en.pdf"]

    def test_changed_representative_keeps_all_formats(self, temp_dir, config):
        (temp_dir / "en.pdf").write_bytes(b"A")
        (temp_dir / "en.docx").write_bytes(b"same docx")
        contents = exports("doc-en", b"B")
        contents[("doc-en", "docx")] = b"same docx"
        fetcher = FakeFetcher(contents)
        manager = VersionManager(config, fetcher, now=NOW)

        result = manager.check_document(config.documents[0])

        assert result.state == DocumentState.CHANGED
        assert result.kept == config.formats
        # Later formats are kept even when identical to their current rendition
        assert (temp_dir / "en-new.docx").read_bytes() == b"same docx"
        assert len(fetcher.calls) == len(config.formats)

    def test_failed_representative_fetch_moves_decision_to_next_format(self, temp_dir, config):
        (temp_dir / "en.docx").write_bytes(b"A")
        fetcher = FakeFetcher(exports("doc-en", b"A"))
        fetcher.failures[("doc-en", "pdf")] = HTTPStatusError("Unexpected status 500", status_code=500)
        tracker = ErrorTracker()
        manager = VersionManager(config, fetcher, error_tracker=tracker, now=NOW)

        result = manager.check_document(config.documents[0])

        assert result.failed == [ExportFormat.PDF]
        assert result.representative == ExportFormat.DOCX
        assert result.state == DocumentState.UNCHANGED
        assert fetcher.calls == [("doc-en", "pdf"), ("doc-en", "docx")]
        assert not (temp_dir / "en-new.docx").exists()
        assert len(tracker.errors) == 1
        assert tracker.errors[0].source_id == "en/pdf"
        assert tracker.errors[0].details["status_code"] == 500

    def test_failed_non_representative_fetch_does_not_stop_others(self, temp_dir, config):
        fetcher = FakeFetcher(exports("doc-en", b"content"))
        fetcher.failures[("doc-en", "txt")] = TransportError("Connection reset")
        manager = VersionManager(config, fetcher, now=NOW)

        result = manager.check_document(config.documents[0])

        assert result.state == DocumentState.CHANGED
        assert result.failed == [ExportFormat.TXT]
        assert ExportFormat.ODT in result.kept
        assert ExportFormat.MD in result.kept
        assert not (temp_dir / "en-new.txt").exists()

    def test_every_fetch_failing_leaves_document_unchecked(self, temp_dir, config):
        fetcher = FakeFetcher({})
        for fmt in config.formats:
            fetcher.failures[("doc-en", fmt.value)] = TransportError("offline")
        manager = VersionManager(config, fetcher, now=NOW)

        result = manager.check_document(config.documents[0])

        assert result.state == DocumentState.UNCHECKED
        assert result.representative is None
        assert result.failed == config.formats
        assert list(temp_dir.iterdir()) == []

    def test_comparison_error_keeps_candidate(self, temp_dir, config):
        (temp_dir / "en.pdf").write_bytes(b"A")
        fetcher = FakeFetcher(exports("doc-en", b"A"))
        tracker = ErrorTracker()
        manager = VersionManager(config, fetcher, error_tracker=tracker, now=NOW)

        with patch("docsync.sync.version_manager.files_equal", side_effect=ComparisonError("unreadable")):
            result = manager.check_document(config.documents[0])

        assert result.state == DocumentState.CHANGED
        assert result.kept == config.formats
        assert (temp_dir / "en-new.pdf").exists()
        assert tracker.errors[0].message == "unreadable"

    def test_markdown_renders_html_candidate(self, temp_dir):
        config = SyncConfig(
            documents=[DocumentSource(lang="en", document_id="doc-en")],
            formats=["md"],
            output_directory=str(temp_dir),
        )
        fetcher = FakeFetcher({("doc-en", "md"): b"# Title\n\nSee [site](https://example.com)\n"})
        manager = VersionManager(config, fetcher, now=NOW)

        manager.check_document(config.documents[0])

        html = (temp_dir / "en-new.html").read_text(encoding="utf-8")
        assert '<h1 id="title">Title</h1>' in html
        assert 'target="_blank"' in html

    def test_unchanged_markdown_discards_html_candidate(self, temp_dir):
        config = SyncConfig(
            documents=[DocumentSource(lang="en", document_id="doc-en")],
            formats=["md", "pdf"],
            output_directory=str(temp_dir),
        )
        (temp_dir / "en.md").write_bytes(b"# Title\n")
        fetcher = FakeFetcher({("doc-en", "md"): b"# Title\n", ("doc-en", "pdf"): b"pdf"})
        manager = VersionManager(config, fetcher, now=NOW)

        result = manager.check_document(config.documents[0])

        assert result.state == DocumentState.UNCHANGED
        assert not (temp_dir / "en-new.md").exists()
        assert not (temp_dir / "en-new.html").exists()

    def test_conversion_disabled(self, temp_dir):
        config = SyncConfig(
            documents=[DocumentSource(lang="en", document_id="doc-en")],
            formats=["md"],
            convert_markdown=False,
            output_directory=str(temp_dir),
        )
        fetcher = FakeFetcher({("doc-en", "md"): b"# Title\n"})
        VersionManager(config, fetcher, now=NOW).check_document(config.documents[0])

        assert (temp_dir / "en-new.md").exists()
        assert not (temp_dir / "en-new.html").exists()

    def test_documents_are_decided_independently(self, temp_dir):
        config = SyncConfig(
            documents=[
                DocumentSource(lang="en", document_id="doc-en"),
                DocumentSource(lang="es", document_id="doc-es"),
            ],
            formats=["pdf", "txt"],
            output_directory=str(temp_dir),
        )
        (temp_dir / "en.pdf").write_bytes(b"A")
        (temp_dir / "es.pdf").write_bytes(b"A")
        contents = {**exports("doc-en", b"A", ("pdf", "txt")), **exports("doc-es", b"B", ("pdf", "txt"))}
        manager = VersionManager(config, FakeFetcher(contents), now=NOW)

        results = manager.check_all()

        assert [r.lang for r in results] == ["en", "es"]
        assert results[0].state == DocumentState.UNCHANGED
        assert results[1].state == DocumentState.CHANGED
        assert not (temp_dir / "en-new.txt").exists()
        assert (temp_dir / "es-new.txt").exists()


class TestPublishPhase:
    """Test upload, archive and promotion."""

    @pytest.fixture
    def temp_dir(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir)

    @pytest.fixture
    def config(self, temp_dir):
        return SyncConfig(
            documents=[DocumentSource(lang="en", document_id="doc-en")],
            formats=["pdf"],
            output_directory=str(temp_dir),
        )

    @pytest.fixture
    def publisher(self):
        return FakePublisher()

    def test_unchanged_document_is_not_published(self, temp_dir, config, publisher):
        (temp_dir / "en.pdf").write_bytes(b"A")
        manager = VersionManager(config, FakeFetcher(exports("doc-en", b"A")), publisher=publisher, now=NOW)

        manager.check_all()
        results = manager.publish_all()

        assert results == []
        assert publisher.uploads == []
        assert (temp_dir / "en.pdf").read_bytes() == b"A"
        assert sorted(p.name for p in temp_dir.iterdir()) == ["en.pdf"]

    def test_changed_document_is_archived_and_promoted(self, temp_dir, config, publisher):
        (temp_dir / "en.pdf").write_bytes(b"A")
        manager = VersionManager(config, FakeFetcher(exports("doc-en", b"B")), publisher=publisher, now=NOW)

        manager.check_all()
        results = manager.publish_all()

        assert len(results) == 1
        assert results[0].status == PublishStatus.PROMOTED
        assert results[0].archive_path == temp_dir / f"en-{STAMP}.pdf"
        assert publisher.uploads == [("en-new.pdf", "resume-en.pdf", b"B")]
        assert (temp_dir / "en.pdf").read_bytes() == b"B"
        assert (temp_dir / f"en-{STAMP}.pdf").read_bytes() == b"A"
        assert not (temp_dir / "en-new.pdf").exists()

    def test_first_version_is_promoted_without_archive(self, temp_dir, config, publisher):
        manager = VersionManager(config, FakeFetcher(exports("doc-en", b"first")), publisher=publisher, now=NOW)

        manager.check_all()
        results = manager.publish_all()

        assert results[0].promoted
        assert results[0].archive_path is None
        assert sorted(p.name for p in temp_dir.iterdir()) == ["en.pdf"]

    def test_second_run_without_remote_change_promotes_nothing(self, temp_dir, publisher):
        config = SyncConfig(
            documents=[DocumentSource(lang="en", document_id="doc-en")],
            output_directory=str(temp_dir),
        )
        fetcher = FakeFetcher(exports("doc-en", b"# Stable\n"))

        first = VersionManager(config, fetcher, publisher=publisher, now=NOW)
        first.check_all()
        assert all(r.promoted for r in first.publish_all())

        second = VersionManager(config, fetcher, publisher=publisher, now=datetime(2024, 1, 15, 11, 0))
        checks = second.check_all()
        assert checks[0].state == DocumentState.UNCHANGED
        assert second.publish_all() == []
        assert not any(p.name.startswith("en-new") for p in temp_dir.iterdir())

    def test_remote_keys_follow_template(self, temp_dir, publisher):
        config = SyncConfig(
            documents=[DocumentSource(lang="pt", document_id="doc-pt")],
            formats=["pdf", "md"],
            key_template="cv/{lang}/cv.{format}",
            output_directory=str(temp_dir),
        )
        manager = VersionManager(config, FakeFetcher(exports("doc-pt", b"# CV\n", ("pdf", "md"))),
                                 publisher=publisher, now=NOW)

        manager.check_all()
        manager.publish_all()

        assert [key for _, key, _ in publisher.uploads] == ["cv/pt/cv.pdf", "cv/pt/cv.md", "cv/pt/cv.html"]

    def test_upload_failure_leaves_candidate_and_current(self, temp_dir, config, publisher):
        (temp_dir / "en.pdf").write_bytes(b"A")
        publisher.failing_keys.add("resume-en.pdf")
        tracker = ErrorTracker()
        manager = VersionManager(config, FakeFetcher(exports("doc-en", b"B")), publisher=publisher,
                                 error_tracker=tracker, now=NOW)

        manager.check_all()
        results = manager.publish_all()

        assert results[0].status == PublishStatus.UPLOAD_FAILED
        assert "access denied" in results[0].error_message
        assert (temp_dir / "en.pdf").read_bytes() == b"A"
        assert (temp_dir / "en-new.pdf").read_bytes() == b"B"
        assert not (temp_dir / f"en-{STAMP}.pdf").exists()
        assert tracker.errors[0].source_id == "en/pdf"
        assert tracker.errors[0].details["stage"] == "upload_failed"

    def test_existing_archive_aborts_promotion(self, temp_dir, config, publisher):
        (temp_dir / "en.pdf").write_bytes(b"A")
        (temp_dir / f"en-{STAMP}.pdf").write_bytes(b"older")
        manager = VersionManager(config, FakeFetcher(exports("doc-en", b"B")), publisher=publisher, now=NOW)

        manager.check_all()
        results = manager.publish_all()

        assert results[0].status == PublishStatus.ARCHIVE_FAILED
        assert "docsync publish" in manager.error_tracker.errors[0].recovery_suggestion
        assert (temp_dir / "en.pdf").read_bytes() == b"A"
        assert (temp_dir / "en-new.pdf").read_bytes() == b"B"
        assert (temp_dir / f"en-{STAMP}.pdf").read_bytes() == b"older"

    def test_failed_promotion_restores_current(self, temp_dir, config, publisher):
        (temp_dir / "en.pdf").write_bytes(b"A")
        manager = VersionManager(config, FakeFetcher(exports("doc-en", b"B")), publisher=publisher, now=NOW)
        manager.check_all()

        with patch.object(Path, "replace", side_effect=OSError("disk full")):
            result = manager.publish_rendition("en", ExportFormat.PDF)

        assert result.status == PublishStatus.PROMOTION_FAILED
        assert (temp_dir / "en.pdf").read_bytes() == b"A"
        assert (temp_dir / "en-new.pdf").read_bytes() == b"B"
        assert not (temp_dir / f"en-{STAMP}.pdf").exists()

    def test_leftover_candidate_of_skipped_format_is_removed(self, temp_dir, publisher):
        config = SyncConfig(
            documents=[DocumentSource(lang="en", document_id="doc-en")],
            formats=["pdf", "docx", "md"],
            output_directory=str(temp_dir),
        )
        (temp_dir / "en.pdf").write_bytes(b"A")
        (temp_dir / "en.docx").write_bytes(b"old docx")
        (temp_dir / "en-new.docx").write_bytes(b"stale docx")
        (temp_dir / "en-new.html").write_bytes(b"stale html")
        manager = VersionManager(config, FakeFetcher(exports("doc-en", b"A", ("pdf",))),
                                 publisher=publisher, now=NOW)

        checks = manager.check_all()
        results = manager.publish_all()

        assert checks[0].state == DocumentState.UNCHANGED
        assert not (temp_dir / "en-new.docx").exists()
        assert not (temp_dir / "en-new.html").exists()
        assert results == []
        assert (temp_dir / "en.docx").read_bytes() == b"old docx"

    def test_leftover_candidate_of_failed_fetch_is_not_published(self, temp_dir, publisher):
        config = SyncConfig(
            documents=[DocumentSource(lang="en", document_id="doc-en")],
            formats=["pdf", "docx"],
            output_directory=str(temp_dir),
        )
        (temp_dir / "en.pdf").write_bytes(b"v0")
        (temp_dir / "en.docx").write_bytes(b"v0")
        (temp_dir / "en-new.docx").write_bytes(b"v1-stale")
        fetcher = FakeFetcher(exports("doc-en", b"v2", ("pdf", "docx")))
        fetcher.failures[("doc-en", "docx")] = TransportError("Connection reset")
        manager = VersionManager(config, fetcher, publisher=publisher, now=NOW)

        checks = manager.check_all()
        results = manager.publish_all()

        assert checks[0].state == DocumentState.CHANGED
        assert checks[0].failed == [ExportFormat.DOCX]
        assert [r.format for r in results] == [ExportFormat.PDF]
        assert [key for _, key, _ in publisher.uploads] == ["resume-en.pdf"]
        assert (temp_dir / "en.pdf").read_bytes() == b"v2"
        assert (temp_dir / "en.docx").read_bytes() == b"v0"
        assert not (temp_dir / "en-new.docx").exists()

    def test_publish_without_publisher_is_a_configuration_error(self, config):
        manager = VersionManager(config, FakeFetcher({}), now=NOW)
        with pytest.raises(ConfigurationError):
            manager.publish_all()
