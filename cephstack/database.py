from pathlib import Path
from typing import Optional
from datetime import datetime

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from cephstack.models import Base, RunRecord
from cephstack.topology import RunContext


def create_session_factory(database_url: str):
    """Build a session factory for the run-state database, creating tables"""
    if database_url.startswith("sqlite:///"):
        db_path = Path(database_url[len("sqlite:///"):])
        if str(db_path) != ":memory:":
            db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RunStateStore:
    """Persists the run context between phase invocations"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def load(self) -> Optional[RunContext]:
        """Most recently updated run context, or None before the first install"""
        db = self.session_factory()
        try:
            record = db.scalars(
                select(RunRecord).order_by(RunRecord.updated_at.desc(), RunRecord.id.desc())
            ).first()
            if record is None:
                return None
            return RunContext.model_validate_json(record.context_json)
        finally:
            db.close()

    def save(self, context: RunContext) -> RunContext:
        now = datetime.utcnow()
        context = context.evolve(updated_at=now)
        db = self.session_factory()
        try:
            record = db.scalars(select(RunRecord).where(RunRecord.fsid == context.fsid)).first()
            if record is None:
                record = RunRecord(fsid=context.fsid, created_at=now)
                db.add(record)
            record.phase = context.phase
            record.context_json = context.model_dump_json()
            record.updated_at = now
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return context

    def count(self) -> int:
        db = self.session_factory()
        try:
            return len(db.scalars(select(RunRecord.id)).all())
        finally:
            db.close()
