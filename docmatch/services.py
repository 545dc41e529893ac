"""Construction of the application's long-lived components from config."""

from dataclasses import dataclass
from pathlib import Path

from docmatch.analysis.analyzer import DocumentAnalyzer, TesseractAnalyzer
from docmatch.db.repository import DocumentRepository
from docmatch.db.session import Database
from docmatch.extraction.adapter import ExtractionAdapter
from docmatch.ingestion.pipeline import IngestionService
from docmatch.matching.engine import MatchingEngine
from docmatch.matching.rules import policy_from_config
from docmatch.matching.scheduler import ReconciliationScheduler
from docmatch.storage.archive import LocalArchiveStore
from docmatch.utils.config import AppConfig
from docmatch.utils.logger import get_logger
from docmatch.validation.rules_engine import RulesEngine

logger = get_logger(__name__)


@dataclass
class Services:
    """Components shared by the CLI and the API."""

    config: AppConfig
    database: Database
    store: LocalArchiveStore
    repository: DocumentRepository
    ingestion: IngestionService
    engine: MatchingEngine
    scheduler: ReconciliationScheduler


def build_services(
    config: AppConfig, analyzer: DocumentAnalyzer | None = None
) -> Services:
    """Wire every component from configuration and create the schema.

    Args:
        config: Application configuration.
        analyzer: Analysis backend; defaults to the local Tesseract one.

    Returns:
        The wired components.
    """
    database = Database(config.database)
    database.create_all()

    store = LocalArchiveStore(config.storage)
    repository = DocumentRepository(database)
    ingestion = IngestionService(
        store=store,
        analyzer=analyzer or TesseractAnalyzer(config.analyzer),
        adapter=ExtractionAdapter(config.extraction),
        rules=RulesEngine(Path(config.validation.rules_path)),
        repository=repository,
        retry=config.analyzer,
    )
    engine = MatchingEngine(
        database, default_policy=policy_from_config(config.matching.default_policy)
    )
    scheduler = ReconciliationScheduler(engine, config.matching.interval_seconds)

    logger.debug("Services ready (database %s)", config.database.url)
    return Services(
        config=config,
        database=database,
        store=store,
        repository=repository,
        ingestion=ingestion,
        engine=engine,
        scheduler=scheduler,
    )
