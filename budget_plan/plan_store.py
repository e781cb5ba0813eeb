"""Persistence layer for storing plans and their events.

The store is the event source for projections: it returns a plan's events in
insertion order with their original ids, so mortgage repayments keep pointing
at the right mortgage. It defaults to SQLite for local use, but accepts any
SQLAlchemy-compatible URL.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.orm import declarative_base, sessionmaker

from .data_models import Plan, event_from_dict

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlanModel(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    start_date = Column(String(10), nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class EventModel(Base):
    __tablename__ = "events"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="CASCADE"), index=True, nullable=False)
    event_id = Column(Integer, nullable=True)
    position = Column(Integer, nullable=False)
    type = Column(String(32), nullable=False)
    data_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class PlanStore:
    """Database-backed plan store."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def add_plan(self, plan: Plan) -> int:
        """Persist ``plan`` with its events and return the new plan id."""
        with self._session_factory() as session:
            row = PlanModel(name=plan.name, start_date=plan.start_date.isoformat())
            session.add(row)
            session.flush()
            for position, event in enumerate(plan.events):
                session.add(
                    EventModel(
                        plan_id=row.id,
                        event_id=event.id,
                        position=position,
                        type=event.type,
                        data_json=json.dumps(event.data.to_dict()),
                    )
                )
            session.commit()
            logger.info("Stored plan %r as %d with %d events", plan.name, row.id, len(plan.events))
            return row.id

    def get_plan(self, plan_id: int) -> Optional[Plan]:
        with self._session_factory() as session:
            row = session.get(PlanModel, plan_id)
            if row is None:
                return None
            event_rows: Iterable[EventModel] = session.execute(
                select(EventModel)
                .where(EventModel.plan_id == plan_id)
                .order_by(EventModel.position.asc())
            ).scalars()
            events = [
                event_from_dict(
                    {
                        "id": e.event_id,
                        "planId": e.plan_id,
                        "type": e.type,
                        "data": json.loads(e.data_json),
                    },
                    f"plans[{plan_id}].events[{e.position}]",
                )
                for e in event_rows
            ]
            return Plan(
                name=row.name,
                start_date=date.fromisoformat(row.start_date),
                events=events,
                id=row.id,
            )

    def list_plans(self) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows: Iterable[PlanModel] = session.execute(
                select(PlanModel).order_by(PlanModel.id.asc())
            ).scalars()
            return [self._to_dict(row) for row in rows]

    def remove_plan(self, plan_id: int) -> bool:
        """Delete a plan and its events. Returns False if it did not exist."""
        with self._session_factory() as session:
            row = session.get(PlanModel, plan_id)
            if row is None:
                return False
            session.execute(EventModel.__table__.delete().where(EventModel.plan_id == plan_id))
            session.delete(row)
            session.commit()
            return True

    @staticmethod
    def _to_dict(row: PlanModel) -> Dict[str, Any]:
        return {
            "id": row.id,
            "name": row.name,
            "start_date": row.start_date,
            "created_at": row.created_at.isoformat(),
        }


def create_store_from_env(url: str | None) -> PlanStore:
    return PlanStore(url or "sqlite:///budget_plans.sqlite3")
