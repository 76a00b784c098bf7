"""Relational backend (SQLAlchemy).

Tables mirror the hosted schema the app was first built against: one table
per record kind keyed by ``user_id``, categories in a single table split by
``type``, and a ``family_members`` table keyed by ``family_id``.
"""

import logging
from dataclasses import fields
from typing import Dict, Tuple, Type

from sqlalchemy import Boolean, Column, Date, DateTime, Float, String, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from budget_core.domain import FamilyMember, MemberProfile
from budget_core.errors import RecordNotFound, StorageError
from budget_core.storage import StoragePort, check_kind
from budget_core.transforms import RECORD_TYPES

logger = logging.getLogger(__name__)

# This Base class tracks all our models
Base = declarative_base()


class ExpenseRow(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String, index=True, nullable=False)
    date = Column(Date, nullable=False)
    description = Column(String, default="")
    paid_by = Column(String, default="user")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)


class IncomeRow(Base):
    __tablename__ = "incomes"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String, index=True, nullable=False)
    date = Column(Date, nullable=False)
    description = Column(String, default="")
    earned_by = Column(String, default="user")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)


class BudgetRow(Base):
    __tablename__ = "budgets"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    category = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    period = Column(String, default="monthly")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TitheRow(Base):
    __tablename__ = "tithes"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    amount = Column(Float, nullable=False)
    date = Column(Date, nullable=False)
    description = Column(String, default="")
    recipient = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)


class TitheGoalRow(Base):
    __tablename__ = "tithe_goals"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    target_percentage = Column(Float, nullable=False)
    period = Column(String, default="monthly")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    color = Column(String, default="#6b7280")
    icon = Column(String, default="MoreHorizontal")
    type = Column(String, nullable=False)  # "expense" or "income"
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class FamilyMemberRow(Base):
    __tablename__ = "family_members"

    id = Column(String, primary_key=True)
    family_id = Column(String, index=True, nullable=False)
    user_id = Column(String, nullable=False)
    role = Column(String, default="user")
    nickname = Column(String, nullable=False)
    created_by = Column(String, nullable=True)
    profile_name = Column(String, default="")
    profile_email = Column(String, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


_MODELS: Dict[str, Type] = {
    "expenses": ExpenseRow,
    "incomes": IncomeRow,
    "budgets": BudgetRow,
    "tithes": TitheRow,
    "tithe_goals": TitheGoalRow,
    "expense_categories": CategoryRow,
    "income_categories": CategoryRow,
}

_CATEGORY_TYPES = {"expense_categories": "expense", "income_categories": "income"}


def _record_values(kind: str, record) -> dict:
    return {f.name: getattr(record, f.name) for f in fields(RECORD_TYPES[kind]) if f.init}


def _to_record(kind: str, row):
    cls = RECORD_TYPES[kind]
    return cls(**{f.name: getattr(row, f.name) for f in fields(cls) if f.init})


def _to_member(row: FamilyMemberRow) -> FamilyMember:
    return FamilyMember(
        id=row.id,
        family_id=row.family_id,
        user_id=row.user_id,
        role=row.role,
        nickname=row.nickname,
        profile=MemberProfile(name=row.profile_name or "", email=row.profile_email or ""),
        created_by=row.created_by,
    )


def make_engine(url: str):
    if url.startswith("sqlite") and ":memory:" in url:
        # one shared connection, otherwise every session sees an empty database
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    # pool_pre_ping=True handles "stale" connections gracefully
    return create_engine(url, pool_pre_ping=True)


class SqlStorage(StoragePort):

    def __init__(self, url: str, create_tables: bool = True):
        self.engine = make_engine(url)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        if create_tables:
            Base.metadata.create_all(bind=self.engine)

    def _query(self, session, kind: str, user_id: str):
        model = _MODELS[kind]
        query = session.query(model).filter(model.user_id == user_id)
        if kind in _CATEGORY_TYPES:
            query = query.filter(model.type == _CATEGORY_TYPES[kind])
        return query

    def list_records(self, kind: str, user_id: str) -> Tuple:
        check_kind(kind)
        model = _MODELS[kind]
        try:
            with self.SessionLocal() as session:
                query = self._query(session, kind, user_id)
                if hasattr(model, "date"):
                    query = query.order_by(model.date.desc())
                else:
                    query = query.order_by(model.created_at)
                return tuple(_to_record(kind, row) for row in query.all())
        except SQLAlchemyError as e:
            raise StorageError(f"could not load {kind}: {e}") from e

    def create(self, kind: str, user_id: str, record) -> None:
        check_kind(kind)
        values = _record_values(kind, record)
        if kind in _CATEGORY_TYPES:
            values["type"] = _CATEGORY_TYPES[kind]
        try:
            with self.SessionLocal() as session:
                session.add(_MODELS[kind](user_id=user_id, **values))
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"could not create {kind} record: {e}") from e
        logger.debug("Created %s %s for %s", kind, record.id, user_id)

    def update(self, kind: str, user_id: str, record) -> None:
        check_kind(kind)
        model = _MODELS[kind]
        try:
            with self.SessionLocal() as session:
                row = self._query(session, kind, user_id).filter(model.id == record.id).first()
                if row is None:
                    raise RecordNotFound(kind, record.id)
                for key, value in _record_values(kind, record).items():
                    setattr(row, key, value)
                if hasattr(model, "updated_at"):
                    row.updated_at = func.now()
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"could not update {kind} record: {e}") from e

    def delete(self, kind: str, user_id: str, record_id: str) -> None:
        check_kind(kind)
        model = _MODELS[kind]
        try:
            with self.SessionLocal() as session:
                row = self._query(session, kind, user_id).filter(model.id == record_id).first()
                if row is None:
                    raise RecordNotFound(kind, record_id)
                session.delete(row)
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"could not delete {kind} record: {e}") from e

    def list_family(self, family_id: str) -> Tuple[FamilyMember, ...]:
        try:
            with self.SessionLocal() as session:
                rows = (
                    session.query(FamilyMemberRow)
                    .filter(FamilyMemberRow.family_id == family_id)
                    .order_by(FamilyMemberRow.created_at)
                    .all()
                )
                return tuple(_to_member(row) for row in rows)
        except SQLAlchemyError as e:
            raise StorageError(f"could not load family {family_id}: {e}") from e

    def add_family_member(self, member: FamilyMember) -> None:
        try:
            with self.SessionLocal() as session:
                session.add(FamilyMemberRow(
                    id=member.id,
                    family_id=member.family_id,
                    user_id=member.user_id,
                    role=member.role,
                    nickname=member.nickname,
                    created_by=member.created_by,
                    profile_name=member.profile.name,
                    profile_email=member.profile.email,
                ))
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"could not add family member: {e}") from e

    def remove_family_member(self, family_id: str, member_id: str) -> None:
        try:
            with self.SessionLocal() as session:
                row = (
                    session.query(FamilyMemberRow)
                    .filter(FamilyMemberRow.family_id == family_id, FamilyMemberRow.id == member_id)
                    .first()
                )
                if row is None:
                    raise RecordNotFound("family_members", member_id)
                session.delete(row)
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"could not remove family member: {e}") from e
