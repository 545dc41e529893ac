"""Ingestion of one inbound file: analyze, adapt, validate, store, archive.

Invalid and duplicate files are moved to their archive sinks with an
audit row. Transient failures of the analysis service or the database are
retried with backoff and then raised, leaving the file in its channel for
redelivery.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from docmatch.analysis.analyzer import DocumentAnalyzer
from docmatch.analysis.retry import retry_with_backoff
from docmatch.db.repository import DocumentRepository, UpsertResult
from docmatch.extraction.adapter import ExtractionAdapter
from docmatch.models.documents import DocumentKind
from docmatch.storage.archive import DUPLICATE_SINK, INVALID_SINK, LocalArchiveStore
from docmatch.utils.config import AnalyzerConfig
from docmatch.utils.exceptions import ArchiveError, DocMatchError, MalformedDocument
from docmatch.utils.logger import get_logger
from docmatch.validation.rules_engine import RulesEngine

logger = get_logger(__name__)

DUPLICATE_REASON = "duplicate"


class IngestionStatus(StrEnum):
    STORED = "stored"
    DUPLICATE = "duplicate"
    INVALID = "invalid"


@dataclass
class IngestionOutcome:
    """What happened to one inbound file."""

    file_name: str
    channel: DocumentKind
    status: IngestionStatus
    document_id: int | None = None
    archive_uri: str | None = None
    reason_code: str | None = None
    detail: str | None = None


class IngestionService:
    """Drives files from the inbound channels into the document store.

    Args:
        store: Inbound folders and archive.
        analyzer: Document analysis backend.
        adapter: Maps analysis output to normalized documents.
        rules: Validation rules applied before storing.
        repository: Document store.
        retry: Attempt count and backoff for transient failures.
        sleep: Sleep function used between retries, injectable for tests.
    """

    def __init__(
        self,
        store: LocalArchiveStore,
        analyzer: DocumentAnalyzer,
        adapter: ExtractionAdapter,
        rules: RulesEngine,
        repository: DocumentRepository,
        retry: AnalyzerConfig | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.adapter = adapter
        self.rules = rules
        self.repository = repository
        self.retry = retry or AnalyzerConfig()
        self._retry_kwargs = {
            "max_attempts": self.retry.max_attempts,
            "initial_delay": self.retry.initial_delay_seconds,
            "backoff_factor": self.retry.backoff_factor,
        }
        if sleep is not None:
            self._retry_kwargs["sleep"] = sleep

    def ingest(self, channel: DocumentKind, file_name: str) -> IngestionOutcome:
        """Ingest one file waiting on a channel.

        Args:
            channel: Channel the file arrived on; decides the expected kind.
            file_name: Name of the file in the channel's inbound folder.

        Returns:
            The outcome; the file has been archived unless archiving failed.

        Raises:
            TransientExternalFailure: Analysis or storage stayed unavailable
                after all retries. The file is left in place.
            PersistenceFailure: The document could not be stored.
        """
        logger.info("Ingesting %s from channel %s", file_name, channel.value)

        if not file_name.lower().endswith(".pdf"):
            return self._reject(channel, file_name, MalformedDocument("non_pdf", "not a PDF file"))

        content = self.store.read(channel, file_name)
        try:
            result = retry_with_backoff(
                lambda: self.analyzer.analyze(content),
                f"Analysing {file_name}",
                **self._retry_kwargs,
            )
            document = self.adapter.adapt(result, channel, file_name)
        except MalformedDocument as exc:
            return self._reject(channel, file_name, exc)

        report = self.rules.validate(document)
        for warning in report.warnings:
            logger.warning("%s: %s", file_name, warning)
        if not report.all_valid:
            return self._reject(
                channel,
                file_name,
                MalformedDocument("validation_failed", "; ".join(report.errors)),
            )

        stored: UpsertResult = retry_with_backoff(
            lambda: self.repository.upsert(document),
            f"Storing {file_name}",
            **self._retry_kwargs,
        )

        if stored.duplicate:
            uri = self._archive_quietly(channel, file_name, sink=DUPLICATE_SINK)
            self.repository.record_file_audit(file_name, channel.value, DUPLICATE_REASON, uri)
            return IngestionOutcome(
                file_name=file_name,
                channel=channel,
                status=IngestionStatus.DUPLICATE,
                document_id=stored.document_id,
                archive_uri=uri,
                reason_code=DUPLICATE_REASON,
            )

        uri = self._archive_quietly(channel, file_name, org=document.org)
        if uri is not None:
            self.repository.set_archive_uri(channel, stored.document_id, uri)
        return IngestionOutcome(
            file_name=file_name,
            channel=channel,
            status=IngestionStatus.STORED,
            document_id=stored.document_id,
            archive_uri=uri,
        )

    def ingest_pending(self) -> list[IngestionOutcome]:
        """Ingest every file waiting on every channel.

        A file whose ingestion raises is logged and left in place; the
        remaining files are still processed.

        Returns:
            Outcomes of the files that were handled.
        """
        outcomes: list[IngestionOutcome] = []
        for channel in DocumentKind:
            for file_name in self.store.list_inbound(channel):
                try:
                    outcomes.append(self.ingest(channel, file_name))
                except DocMatchError as exc:
                    logger.error(
                        "Ingestion of %s failed, leaving it in %s: %s",
                        file_name,
                        channel.value,
                        exc,
                    )
        return outcomes

    def _reject(
        self, channel: DocumentKind, file_name: str, error: MalformedDocument
    ) -> IngestionOutcome:
        logger.warning("Rejected %s from %s: %s", file_name, channel.value, error)
        uri = self._archive_quietly(channel, file_name, sink=INVALID_SINK)
        self.repository.record_file_audit(file_name, channel.value, error.reason_code, uri)
        return IngestionOutcome(
            file_name=file_name,
            channel=channel,
            status=IngestionStatus.INVALID,
            archive_uri=uri,
            reason_code=error.reason_code,
            detail=error.message,
        )

    def _archive_quietly(
        self,
        channel: DocumentKind,
        file_name: str,
        *,
        org: str | None = None,
        sink: str | None = None,
    ) -> str | None:
        try:
            if sink is not None:
                return self.store.archive_to_sink(channel, file_name, sink)
            return self.store.archive(channel, file_name, org)
        except ArchiveError as exc:
            logger.error("Archiving %s failed: %s", file_name, exc)
            return None

