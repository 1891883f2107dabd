"""
Generation history persistence.

One record per successful generation, owned by exactly one user. Records are
written once and never updated; listing returns them in insertion order.
"""
import uuid
from typing import List

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from database import GenerationHistory, create_session_factory
from models import GeneratedCandidate, HistoryRecord, HistoryRequestParams


class HistoryStoreError(Exception):
    """Raised when a history record cannot be written or read"""


class HistoryStore:
    """Document-style store for generation history, backed by SQLAlchemy"""

    def __init__(self, session_factory: sessionmaker = None):
        self.session_factory = session_factory or create_session_factory()

    def create(
        self,
        params: HistoryRequestParams,
        candidates: List[GeneratedCandidate],
        user_id: str
    ) -> HistoryRecord:
        """Persist one generation request with its normalised candidates."""
        row = GenerationHistory(
            id=str(uuid.uuid4()),
            owner_user_id=user_id,
            request_params=params.model_dump(),
            generated_molecules=[c.model_dump() for c in candidates],
        )

        try:
            with self.session_factory() as session:
                session.add(row)
                session.commit()
                session.refresh(row)
                record = self._to_record(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save generation history for {user_id}: {e}")
            raise HistoryStoreError(str(e)) from e

        logger.info(f"Saved history record {record.id} ({len(candidates)} molecules) for {user_id}")
        return record

    def list_by_user(self, user_id: str) -> List[HistoryRecord]:
        """All records owned by a user, oldest first."""
        try:
            with self.session_factory() as session:
                rows = (
                    session.query(GenerationHistory)
                    .filter(GenerationHistory.owner_user_id == user_id)
                    .order_by(GenerationHistory.seq)
                    .all()
                )
                return [self._to_record(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load generation history for {user_id}: {e}")
            raise HistoryStoreError(str(e)) from e

    @staticmethod
    def _to_record(row: GenerationHistory) -> HistoryRecord:
        return HistoryRecord(
            id=row.id,
            owner_user_id=row.owner_user_id,
            request_params=HistoryRequestParams(**row.request_params),
            generated_molecules=[GeneratedCandidate(**m) for m in row.generated_molecules],
            created_at=row.created_at,
        )
