"""
SQL storage adapter for medconsent
SQLAlchemy persistence for accounts, records and consent requests
"""

import threading
from datetime import datetime, UTC
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterable, Iterator, List, Optional
import structlog
from sqlalchemy import (
    create_engine, Boolean, Column, DateTime, Index, Integer,
    LargeBinary, String, Text,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..consent.models import (
    AccessConsentRequest, ConsentKind, ConsentRequest, ConsentStatus, UploadConsentRequest,
)
from ..exceptions import DuplicateIdentifierError
from ..identity.models import Account, AccountKind, Individual, Institution, Sex
from ..identity.subject_keys import name_key
from ..records.models import Record
from .base import ExchangeRepository

logger = structlog.get_logger(__name__)

Base = declarative_base()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands timestamps back naive; every stored timestamp is UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class AccountDB(Base):
    """SQLAlchemy model for institution and individual accounts"""
    __tablename__ = "accounts"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    kind = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    credential_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_login_at = Column(DateTime(timezone=True))

    # institution columns
    login_email = Column(String, unique=True)

    # individual columns
    subject_key = Column(String, unique=True)
    sex = Column(String)
    phone = Column(String)
    name_key = Column(String, index=True)


class RecordDB(Base):
    """SQLAlchemy model for uploaded records"""
    __tablename__ = "records"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    subject_key = Column(String, nullable=False, index=True)
    uploader_institution_id = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False)
    payload = Column(LargeBinary, nullable=False)
    filename = Column(String, nullable=False)
    mime_type = Column(String, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
    approved = Column(Boolean, nullable=False, default=False)


class ConsentRequestDB(Base):
    """SQLAlchemy model for upload and access consent requests"""
    __tablename__ = "consent_requests"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    kind = Column(String, nullable=False)
    subject_key = Column(String, nullable=False)
    institution_id = Column(String, nullable=False)
    institution_name = Column(String, nullable=False)
    requested_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False)
    resolved_at = Column(DateTime(timezone=True))
    record_id = Column(String)

    __table_args__ = (
        Index("ix_consent_requests_subject_status", "subject_key", "status"),
        Index("ix_consent_requests_grant", "institution_id", "subject_key", "kind", "status"),
    )


class SQLExchangeRepository(ExchangeRepository):
    """Storage adapter backed by any SQLAlchemy database URL"""

    def __init__(self, database_url: Optional[str] = None):
        # Default to SQLite for development
        self.database_url = database_url or "sqlite:///medconsent.db"
        engine_kwargs = {}
        if self.database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(self.database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self._lock = threading.RLock()
        self._active_session: ContextVar[Optional[Session]] = ContextVar(
            f"medconsent_session_{id(self)}", default=None
        )

        # Create tables
        Base.metadata.create_all(bind=self.engine)
        logger.info("SQL storage initialised", database_url=self.database_url)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            if self._active_session.get() is not None:
                yield
                return
            with self.SessionLocal() as session:
                token = self._active_session.set(session)
                try:
                    yield
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
                finally:
                    self._active_session.reset(token)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Join the active unit of work, or run a short one of our own"""
        active = self._active_session.get()
        if active is not None:
            yield active
            return
        with self.SessionLocal() as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    # -- conversions --------------------------------------------------------

    def _account_from_db(self, row: AccountDB) -> Account:
        if row.kind == AccountKind.INSTITUTION.value:
            return Institution(
                id=row.id,
                display_name=row.display_name,
                credential_hash=row.credential_hash,
                created_at=_as_utc(row.created_at),
                last_login_at=_as_utc(row.last_login_at),
                login_email=row.login_email,
            )
        return Individual(
            id=row.id,
            display_name=row.display_name,
            credential_hash=row.credential_hash,
            created_at=_as_utc(row.created_at),
            last_login_at=_as_utc(row.last_login_at),
            subject_key=row.subject_key,
            sex=Sex(row.sex),
            phone=row.phone,
        )

    def _record_from_db(self, row: RecordDB) -> Record:
        return Record(
            id=row.id,
            subject_key=row.subject_key,
            uploader_institution_id=row.uploader_institution_id,
            category=row.category,
            payload=row.payload,
            filename=row.filename,
            mime_type=row.mime_type,
            notes=row.notes,
            created_at=_as_utc(row.created_at),
            approved=row.approved,
        )

    def _request_from_db(self, row: ConsentRequestDB) -> ConsentRequest:
        common = dict(
            id=row.id,
            subject_key=row.subject_key,
            institution_id=row.institution_id,
            institution_name=row.institution_name,
            requested_at=_as_utc(row.requested_at),
            status=ConsentStatus(row.status),
            resolved_at=_as_utc(row.resolved_at),
        )
        if row.kind == ConsentKind.UPLOAD.value:
            return UploadConsentRequest(record_id=row.record_id, **common)
        return AccessConsentRequest(**common)

    # -- accounts -----------------------------------------------------------

    def add_account(self, account: Account) -> None:
        row = AccountDB(
            id=account.id,
            kind=account.kind.value,
            display_name=account.display_name,
            credential_hash=account.credential_hash,
            created_at=account.created_at,
            last_login_at=account.last_login_at,
        )
        if isinstance(account, Institution):
            row.login_email = account.login_email
            field, value = "login_email", account.login_email
        else:
            row.subject_key = account.subject_key
            row.sex = account.sex.value
            row.phone = account.phone
            row.name_key = name_key(account.display_name)
            field, value = "subject_key", account.subject_key

        try:
            with self._session() as session:
                session.add(row)
                session.flush()
        except IntegrityError:
            logger.warning("Duplicate account identifier", field=field, value=value)
            raise DuplicateIdentifierError(field, value)

        logger.info("Stored account", account_id=account.id, kind=account.kind.value)

    def update_account(self, account: Account) -> bool:
        with self._session() as session:
            row = session.query(AccountDB).filter_by(id=account.id).first()
            if not row:
                logger.warning("Account not found for update", account_id=account.id)
                return False
            row.display_name = account.display_name
            if isinstance(account, Individual):
                row.name_key = name_key(account.display_name)
            row.credential_hash = account.credential_hash
            row.last_login_at = account.last_login_at
            return True

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._session() as session:
            row = session.query(AccountDB).filter_by(id=account_id).first()
            return self._account_from_db(row) if row else None

    def get_institution_by_email(self, email: str) -> Optional[Institution]:
        with self._session() as session:
            row = session.query(AccountDB).filter_by(
                kind=AccountKind.INSTITUTION.value, login_email=email
            ).first()
            return self._account_from_db(row) if row else None

    def get_individual_by_subject_key(self, subject_key: str) -> Optional[Individual]:
        with self._session() as session:
            row = session.query(AccountDB).filter_by(
                kind=AccountKind.INDIVIDUAL.value, subject_key=subject_key
            ).first()
            return self._account_from_db(row) if row else None

    def find_individual(self, name: str, phone: str) -> Optional[Individual]:
        with self._session() as session:
            row = session.query(AccountDB).filter(
                AccountDB.kind == AccountKind.INDIVIDUAL.value,
                AccountDB.name_key == name_key(name),
                AccountDB.phone == phone,
            ).order_by(AccountDB.seq).first()
            return self._account_from_db(row) if row else None

    # -- records ------------------------------------------------------------

    def add_record(self, record: Record) -> None:
        with self._session() as session:
            session.add(RecordDB(
                id=record.id,
                subject_key=record.subject_key,
                uploader_institution_id=record.uploader_institution_id,
                category=record.category,
                payload=record.payload,
                filename=record.filename,
                mime_type=record.mime_type,
                notes=record.notes,
                created_at=record.created_at,
                approved=record.approved,
            ))
            session.flush()

    def update_record(self, record: Record) -> bool:
        with self._session() as session:
            row = session.query(RecordDB).filter_by(id=record.id).first()
            if not row:
                return False
            row.approved = record.approved
            row.notes = record.notes
            return True

    def get_record(self, record_id: str) -> Optional[Record]:
        with self._session() as session:
            row = session.query(RecordDB).filter_by(id=record_id).first()
            return self._record_from_db(row) if row else None

    def list_records(self, subject_key: Optional[str] = None,
                     uploader_institution_id: Optional[str] = None,
                     approved_only: bool = True) -> List[Record]:
        with self._session() as session:
            query = session.query(RecordDB)
            if subject_key is not None:
                query = query.filter(RecordDB.subject_key == subject_key)
            if uploader_institution_id is not None:
                query = query.filter(RecordDB.uploader_institution_id == uploader_institution_id)
            if approved_only:
                query = query.filter(RecordDB.approved.is_(True))
            return [self._record_from_db(row) for row in query.order_by(RecordDB.seq).all()]

    # -- consent requests ---------------------------------------------------

    def add_request(self, request: ConsentRequest) -> None:
        with self._session() as session:
            session.add(ConsentRequestDB(
                id=request.id,
                kind=request.kind.value,
                subject_key=request.subject_key,
                institution_id=request.institution_id,
                institution_name=request.institution_name,
                requested_at=request.requested_at,
                status=request.status.value,
                resolved_at=request.resolved_at,
                record_id=getattr(request, "record_id", None),
            ))
            session.flush()

    def update_request(self, request: ConsentRequest) -> bool:
        with self._session() as session:
            row = session.query(ConsentRequestDB).filter_by(id=request.id).first()
            if not row:
                logger.warning("Consent request not found for update", request_id=request.id)
                return False
            row.status = request.status.value
            row.resolved_at = request.resolved_at
            return True

    def get_request(self, request_id: str) -> Optional[ConsentRequest]:
        with self._session() as session:
            row = session.query(ConsentRequestDB).filter_by(id=request_id).first()
            return self._request_from_db(row) if row else None

    def list_requests(self, subject_key: Optional[str] = None,
                      institution_id: Optional[str] = None,
                      kind: Optional[ConsentKind] = None,
                      statuses: Optional[Iterable[ConsentStatus]] = None) -> List[ConsentRequest]:
        with self._session() as session:
            query = session.query(ConsentRequestDB)
            if subject_key is not None:
                query = query.filter(ConsentRequestDB.subject_key == subject_key)
            if institution_id is not None:
                query = query.filter(ConsentRequestDB.institution_id == institution_id)
            if kind is not None:
                query = query.filter(ConsentRequestDB.kind == kind.value)
            if statuses is not None:
                query = query.filter(ConsentRequestDB.status.in_([s.value for s in statuses]))
            return [self._request_from_db(row) for row in query.order_by(ConsentRequestDB.seq).all()]
