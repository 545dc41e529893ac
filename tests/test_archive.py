"""Tests for the local inbound/archive store."""

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from docmatch.models.documents import DocumentKind
from docmatch.storage.archive import (
    DUPLICATE_SINK,
    INVALID_SINK,
    LocalArchiveStore,
    sanitize_label,
)
from docmatch.utils.config import StorageConfig
from docmatch.utils.exceptions import ArchiveError

FIXED_NOW = datetime(2024, 1, 15, 9, 30, 5, tzinfo=timezone.utc)


class TestSanitizeLabel:
    def test_lowercases_and_replaces_unsafe(self) -> None:
        assert sanitize_label("Acme Supplies/Ltd.") == "acme supplies_ltd_"

    def test_blank_is_unknown(self) -> None:
        assert sanitize_label("") == "unknown"
        assert sanitize_label(None) == "unknown"


class TestLocalArchiveStore:
    """Tests for inbound folders and archive layout."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> LocalArchiveStore:
        return LocalArchiveStore(StorageConfig(root=str(tmp_path)), clock=lambda: FIXED_NOW)

    def test_write_and_list_inbound(self, store: LocalArchiveStore) -> None:
        store.write_inbound(DocumentKind.INVOICE, "b.pdf", b"%PDF-b")
        store.write_inbound(DocumentKind.INVOICE, "a.pdf", b"%PDF-a")

        assert store.list_inbound(DocumentKind.INVOICE) == ["a.pdf", "b.pdf"]
        assert store.list_inbound(DocumentKind.GRN) == []
        assert store.read(DocumentKind.INVOICE, "a.pdf") == b"%PDF-a"

    def test_read_missing_file(self, store: LocalArchiveStore) -> None:
        with pytest.raises(FileNotFoundError):
            store.read(DocumentKind.INVOICE, "missing.pdf")

    def test_file_name_with_directory_rejected(self, store: LocalArchiveStore) -> None:
        with pytest.raises(ValueError):
            store.inbound_path(DocumentKind.INVOICE, "../escape.pdf")

    def test_archive_layout(self, store: LocalArchiveStore, tmp_path: Path) -> None:
        store.write_inbound(DocumentKind.PURCHASE_ORDER, "po.pdf", b"%PDF-po")

        uri = store.archive(DocumentKind.PURCHASE_ORDER, "po.pdf", "Acme Supplies Ltd")

        expected = (
            tmp_path / "archive" / "purchaseorder" / "acme supplies ltd" / "15012024"
            / "po_093005.pdf"
        )
        assert expected.is_file()
        assert uri == expected.resolve().as_uri()
        assert store.list_inbound(DocumentKind.PURCHASE_ORDER) == []

    def test_archive_name_collision_gets_counter(
        self, store: LocalArchiveStore, tmp_path: Path
    ) -> None:
        store.write_inbound(DocumentKind.GRN, "grn.pdf", b"first")
        first = store.archive_to_sink(DocumentKind.GRN, "grn.pdf", INVALID_SINK)
        store.write_inbound(DocumentKind.GRN, "grn.pdf", b"second")
        second = store.archive_to_sink(DocumentKind.GRN, "grn.pdf", INVALID_SINK)

        assert first != second
        assert second.endswith("grn_093005_1.pdf")

    def test_archive_failure_raises_archive_error(self, store: LocalArchiveStore) -> None:
        store.write_inbound(DocumentKind.INVOICE, "inv.pdf", b"%PDF")
        with patch("docmatch.storage.archive.shutil.move", side_effect=OSError("disk full")):
            with pytest.raises(ArchiveError, match="disk full"):
                store.archive(DocumentKind.INVOICE, "inv.pdf", "acme")

    def test_sinks_are_apart_from_organisation_folders(
        self, store: LocalArchiveStore, tmp_path: Path
    ) -> None:
        store.write_inbound(DocumentKind.INVOICE, "org.pdf", b"%PDF-org")
        store.write_inbound(DocumentKind.INVOICE, "dup.pdf", b"%PDF-dup")

        store.archive(DocumentKind.INVOICE, "org.pdf", "Duplicate")
        store.archive_to_sink(DocumentKind.INVOICE, "dup.pdf", DUPLICATE_SINK)

        archive = tmp_path / "archive"
        assert (archive / "invoice" / "duplicate" / "15012024" / "org_093005.pdf").is_file()
        assert (archive / "duplicate" / "invoice" / "15012024" / "dup_093005.pdf").is_file()
        assert list((archive / "invoice" / "duplicate" / "15012024").iterdir()) == [
            archive / "invoice" / "duplicate" / "15012024" / "org_093005.pdf"
        ]

    def test_unknown_sink_rejected(self, store: LocalArchiveStore) -> None:
        store.write_inbound(DocumentKind.INVOICE, "inv.pdf", b"%PDF")
        with pytest.raises(ValueError, match="Unknown archive sink"):
            store.archive_to_sink(DocumentKind.INVOICE, "inv.pdf", "quarantine")
        assert store.list_inbound(DocumentKind.INVOICE) == ["inv.pdf"]
