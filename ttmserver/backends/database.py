"""
Database TTM Server
Translation memory kept in a SQL database, fuzzy matched in process.
"""
import logging
from difflib import SequenceMatcher
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, delete, select, text as sql_text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..base import TTMServer, sort_suggestions
from ..exceptions import TransientBackendError
from ..models import BackendConfig, Suggestion, TranslationUnit, UpdateResult
from .database_models import Base, TTMUnit, normalize_text

logger = logging.getLogger(__name__)


class DatabaseTTMServer(TTMServer):
    """
    Readable and writable translation memory on SQLAlchemy.

    Meant for small installations: every query scores all definitions of
    the source language with SequenceMatcher.
    """

    def __init__(
        self,
        config: BackendConfig,
        wiki_id: str = "default",
        database_dir: Optional[Path] = None,
        lookup_size: int = 25,
    ):
        """
        Initialize backend.

        Args:
            config: Backend configuration; ``database_url`` wins over ``database_dir``
            wiki_id: Origin id stamped on stored rows
            database_dir: Directory for the default SQLite file
            lookup_size: Cap on returned suggestions
        """
        super().__init__(config, wiki_id)
        self.database_dir = Path(database_dir) if database_dir else Path("data")
        self.lookup_size = lookup_size
        self._engine = None
        self._session_factory = None

    @property
    def database_url(self) -> str:
        if self.config.database_url:
            return self.config.database_url
        return f"sqlite:///{self.database_dir / f'ttm-{self.name}.db'}"

    @property
    def engine(self):
        """Get or create SQLAlchemy engine."""
        if self._engine is None:
            url = self.database_url
            connect_args = {}
            if url.startswith("sqlite"):
                connect_args["check_same_thread"] = False
                if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
                    Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
            self._engine = create_engine(url, echo=False, connect_args=connect_args)
            Base.metadata.create_all(self._engine)
        return self._engine

    @property
    def session_factory(self):
        """Get session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self.engine)
        return self._session_factory

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.session_factory()

    # ==================== READ ====================

    def query(self, source_language: str, target_language: str, text: str) -> List[Suggestion]:
        if not text or not text.strip():
            return []

        needle = normalize_text(text)
        cutoff = self.config.cutoff

        try:
            with self.get_session() as session:
                definitions = session.execute(
                    select(TTMUnit).where(
                        TTMUnit.language == source_language,
                        TTMUnit.is_definition.is_(True),
                    )
                ).scalars().all()

                scored: Dict[Tuple[str, str], Tuple[float, str]] = {}
                for unit in definitions:
                    # ratio() can never exceed 2 * shorter / total length
                    total = len(needle) + unit.text_length
                    if total == 0 or 2 * min(len(needle), unit.text_length) / total < cutoff:
                        continue
                    score = SequenceMatcher(None, needle, unit.text_normalized).ratio()
                    if score >= cutoff:
                        scored[(unit.wiki, unit.location)] = (score, unit.text)

                if not scored:
                    return []

                locations = sorted({location for _, location in scored})
                translations = session.execute(
                    select(TTMUnit).where(
                        TTMUnit.language == target_language,
                        TTMUnit.location.in_(locations),
                    ).order_by(TTMUnit.wiki, TTMUnit.location)
                ).scalars().all()

                suggestions = []
                for unit in translations:
                    match = scored.get((unit.wiki, unit.location))
                    if match is None:
                        continue
                    score, source_text = match
                    suggestions.append(Suggestion(
                        source=source_text,
                        target=unit.text,
                        quality=score,
                        wiki=unit.wiki,
                        location=f"{unit.location}/{target_language}",
                        context=unit.location,
                        uri=unit.uri or "",
                    ))
        except (SQLAlchemyError, OSError) as e:
            raise TransientBackendError(f"Query failed: {e}", service=self.name) from e

        return sort_suggestions(suggestions)[:self.lookup_size]

    # ==================== WRITE ====================

    def update(self, unit: TranslationUnit) -> UpdateResult:
        if not unit.is_valid:
            return UpdateResult.skipped("invalid unit")

        try:
            with self.get_session() as session:
                # Definitions are overwritten in place, never deleted
                if not unit.is_definition:
                    session.execute(delete(TTMUnit).where(
                        TTMUnit.wiki == self.wiki_id,
                        TTMUnit.location == unit.location,
                        TTMUnit.language == unit.language,
                    ))

                if unit.text is not None and unit.source_language is not None:
                    self._upsert(session, unit)

                session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("%s: update of %s failed: %s", self.name, unit.title, e)
            return UpdateResult.failure(str(e))

        return UpdateResult.applied()

    def _upsert(self, session: Session, unit: TranslationUnit) -> None:
        row = session.execute(
            select(TTMUnit).where(
                TTMUnit.wiki == self.wiki_id,
                TTMUnit.location == unit.location,
                TTMUnit.language == unit.language,
            )
        ).scalar_one_or_none()

        if row is None:
            row = TTMUnit(wiki=self.wiki_id, location=unit.location, language=unit.language)
            session.add(row)

        normalized = normalize_text(unit.text)
        row.text = unit.text
        row.text_normalized = normalized
        row.text_length = len(normalized)
        row.is_definition = unit.is_definition
        row.revision_id = unit.revision_id
        row.uri = unit.uri or None

    # ==================== BOOTSTRAP ====================

    def begin_bootstrap(self) -> None:
        """Remove every row of this wiki; the rebuild refills them."""
        with self.get_session() as session:
            result = session.execute(delete(TTMUnit).where(TTMUnit.wiki == self.wiki_id))
            session.commit()
        logger.info("%s: removed %d rows of %s", self.name, result.rowcount, self.wiki_id)

    def begin_batch(self) -> None:
        pass

    def batch_insert_definitions(self, batch: Sequence[TranslationUnit]) -> None:
        self._insert_batch(batch)

    def batch_insert_translations(self, batch: Sequence[TranslationUnit]) -> None:
        self._insert_batch(batch)

    def _insert_batch(self, batch: Sequence[TranslationUnit]) -> None:
        try:
            with self.get_session() as session:
                for unit in batch:
                    if unit.text is None:
                        continue
                    self._upsert(session, unit)
                session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise TransientBackendError(f"Batch insert failed: {e}", service=self.name) from e

    def end_batch(self) -> None:
        pass

    def end_bootstrap(self) -> None:
        pass

    def set_do_reindex(self) -> None:
        """Recreate the tables on the next bootstrap."""
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)

    def health(self) -> Dict[str, str]:
        try:
            with self.engine.connect() as conn:
                conn.execute(sql_text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            return {"status": "red", "error": str(e)}
        return {"status": "green"}

    def count(self) -> int:
        """Number of stored rows (all wikis)."""
        with self.get_session() as session:
            return len(session.execute(select(TTMUnit.id)).all())
