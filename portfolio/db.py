"""
Content store abstraction for SQL databases and an in-memory test implementation.
"""

from __future__ import annotations

import itertools
import json
import logging
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional, Protocol, Union

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from portfolio.errors import NotFoundError, StorageError, ValidationError
from portfolio.schemas import CertificateStatus

logger = logging.getLogger(__name__)

RecordId = Union[int, str]

CERTIFICATE_STATUSES = tuple(status.value for status in CertificateStatus)


class ContentStore(Protocol):
    """Interface for content and admin persistence."""

    def open(self) -> None:
        ...

    def close(self) -> None:
        ...

    def list_projects(self) -> list["ProjectRecord"]:
        ...

    def create_project(
        self, fields: dict, image_url: Optional[str] = None
    ) -> "ProjectRecord":
        ...

    def update_project(
        self, project_id: str, fields: dict, image_url: Optional[str] = None
    ) -> "ProjectRecord":
        ...

    def delete_project(self, project_id: str) -> bool:
        ...

    def list_certificates(self) -> list["CertificateRecord"]:
        ...

    def create_certificate(
        self, fields: dict, image_url: Optional[str] = None
    ) -> "CertificateRecord":
        ...

    def delete_certificate(self, certificate_id: str) -> bool:
        ...

    def get_admin(self, username: str) -> Optional["AdminRecord"]:
        ...

    def create_admin(self, username: str, password_hash: str) -> "AdminRecord":
        ...

    def count_admins(self) -> int:
        ...


@dataclass
class ProjectRecord:
    id: RecordId
    title: str
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    tech_stack: list[str] = field(default_factory=list)
    image_url: Optional[str] = None
    demo_url: Optional[str] = None
    repo_url: Optional[str] = None
    created_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class CertificateRecord:
    id: RecordId
    title: str
    issuer: Optional[str] = None
    issue_date: Optional[str] = None
    credential_url: Optional[str] = None
    image_url: Optional[str] = None
    status: str = CertificateStatus.COMPLETED.value
    progress_percent: int = 100
    created_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class AdminRecord:
    id: RecordId
    username: str
    password_hash: str


PROJECT_FIELDS = (
    "title",
    "short_description",
    "full_description",
    "tech_stack",
    "demo_url",
    "repo_url",
)
CERTIFICATE_FIELDS = (
    "title",
    "issuer",
    "issue_date",
    "credential_url",
    "status",
    "progress_percent",
)


def dump_tech_stack(tags: Iterable[str], fmt: str = "json") -> str:
    tags = list(tags)
    if fmt == "csv":
        text = ",".join(tags)
        if load_tech_stack(text, fmt) != tags:
            raise ValidationError(
                "tech_stack tags must be non-empty, without commas or "
                "surrounding spaces, when stored as CSV"
            )
        return text
    return json.dumps(tags)


def _json_tags(text: str) -> Optional[list[str]]:
    try:
        decoded = json.loads(text)
    except ValueError:
        return None
    if isinstance(decoded, list) and all(isinstance(tag, str) for tag in decoded):
        return decoded
    return None


def load_tech_stack(raw: Optional[str], fmt: str = "json") -> list[str]:
    """
    Decode with the configured format first. The other format is a
    fallback so stored rows survive a format switch.
    """
    if not raw:
        return []
    if fmt == "csv":
        text = raw.strip()
        if text.startswith('["') and text.endswith("]"):
            tags = _json_tags(text)
            if tags is not None:
                return tags
        return [tag.strip() for tag in text.split(",") if tag.strip()]
    tags = _json_tags(raw)
    if tags is not None:
        return tags
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def require_title(fields: dict) -> None:
    if not (fields.get("title") or "").strip():
        raise ValidationError("title is required")


def validate_certificate(fields: dict) -> dict:
    """Reject values the certificates table would not accept."""
    require_title(fields)
    status = fields.get("status") or CertificateStatus.COMPLETED.value
    if isinstance(status, CertificateStatus):
        status = status.value
    if status not in CERTIFICATE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(CERTIFICATE_STATUSES)}"
        )
    progress = fields.get("progress_percent")
    if progress is None:
        progress = 100
    if not isinstance(progress, int) or not 0 <= progress <= 100:
        raise ValidationError("progress_percent must be an integer from 0 to 100")
    return {**fields, "status": status, "progress_percent": progress}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class InMemoryContentStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.projects: dict[int, ProjectRecord] = {}
        self.certificates: dict[int, CertificateRecord] = {}
        self.admins: dict[str, AdminRecord] = {}
        self._ids = itertools.count(1)

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.projects.clear()
        self.certificates.clear()
        self.admins.clear()

    @staticmethod
    def _key(record_id: str) -> Optional[int]:
        try:
            return int(record_id)
        except (TypeError, ValueError):
            return None

    def list_projects(self) -> list[ProjectRecord]:
        return sorted(
            self.projects.values(),
            key=lambda p: (p.created_at, p.id),
            reverse=True,
        )

    def create_project(
        self, fields: dict, image_url: Optional[str] = None
    ) -> ProjectRecord:
        require_title(fields)
        record = ProjectRecord(
            id=next(self._ids),
            image_url=image_url,
            created_at=_utcnow(),
            **{name: fields.get(name) for name in PROJECT_FIELDS if name != "tech_stack"},
            tech_stack=list(fields.get("tech_stack") or []),
        )
        self.projects[record.id] = record
        return record

    def update_project(
        self, project_id: str, fields: dict, image_url: Optional[str] = None
    ) -> ProjectRecord:
        require_title(fields)
        record = self.projects.get(self._key(project_id))
        if record is None:
            raise NotFoundError(f"Project {project_id} not found")
        for name in PROJECT_FIELDS:
            setattr(record, name, fields.get(name))
        record.tech_stack = list(fields.get("tech_stack") or [])
        if image_url:
            record.image_url = image_url
        return record

    def delete_project(self, project_id: str) -> bool:
        return self.projects.pop(self._key(project_id), None) is not None

    def list_certificates(self) -> list[CertificateRecord]:
        return sorted(self.certificates.values(), key=lambda c: (c.created_at, c.id))

    def create_certificate(
        self, fields: dict, image_url: Optional[str] = None
    ) -> CertificateRecord:
        fields = validate_certificate(fields)
        record = CertificateRecord(
            id=next(self._ids),
            image_url=image_url,
            created_at=_utcnow(),
            **{name: fields.get(name) for name in CERTIFICATE_FIELDS},
        )
        self.certificates[record.id] = record
        return record

    def delete_certificate(self, certificate_id: str) -> bool:
        return self.certificates.pop(self._key(certificate_id), None) is not None

    def get_admin(self, username: str) -> Optional[AdminRecord]:
        return self.admins.get(username)

    def create_admin(self, username: str, password_hash: str) -> AdminRecord:
        if username in self.admins:
            raise StorageError(f"Admin {username} already exists")
        record = AdminRecord(
            id=next(self._ids), username=username, password_hash=password_hash
        )
        self.admins[username] = record
        return record

    def count_admins(self) -> int:
        return len(self.admins)


class SqlContentStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL; SQLite is
    the default deployment.
    """

    def __init__(self, database_url: str, *, tech_stack_format: str = "json"):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlContentStore")
        self.tech_stack_format = tech_stack_format
        engine_kwargs: dict = {"future": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.rstrip("/") in (
                "sqlite:",
                "sqlite+pysqlite:",
            ):
                # One shared connection, otherwise every thread sees an empty db.
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(pool_pre_ping=True, pool_recycle=1800)
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )

    def open(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not initialise database: {exc}") from exc
        logger.info("Connected to database %s", self.engine.url.render_as_string())

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.Session()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(str(getattr(exc, "orig", None) or exc)) from exc
        finally:
            session.close()

    @staticmethod
    def _key(record_id: str) -> Optional[int]:
        try:
            return int(record_id)
        except (TypeError, ValueError):
            return None

    def _to_project(self, row: "ProjectRow") -> ProjectRecord:
        return ProjectRecord(
            id=row.id,
            title=row.title,
            short_description=row.short_description,
            full_description=row.full_description,
            tech_stack=load_tech_stack(row.tech_stack, self.tech_stack_format),
            image_url=row.image_url,
            demo_url=row.demo_url,
            repo_url=row.repo_url,
            created_at=row.created_at,
        )

    @staticmethod
    def _to_certificate(row: "CertificateRow") -> CertificateRecord:
        return CertificateRecord(
            id=row.id,
            title=row.title,
            issuer=row.issuer,
            issue_date=row.issue_date,
            credential_url=row.credential_url,
            image_url=row.image_url,
            status=row.status,
            progress_percent=row.progress_percent,
            created_at=row.created_at,
        )

    def _apply_project_fields(self, row: "ProjectRow", fields: dict) -> None:
        row.title = fields["title"]
        row.short_description = fields.get("short_description")
        row.full_description = fields.get("full_description")
        row.tech_stack = dump_tech_stack(
            fields.get("tech_stack") or [], self.tech_stack_format
        )
        row.demo_url = fields.get("demo_url")
        row.repo_url = fields.get("repo_url")

    def list_projects(self) -> list[ProjectRecord]:
        with self._session() as session:
            stmt = select(ProjectRow).order_by(
                ProjectRow.created_at.desc(), ProjectRow.id.desc()
            )
            return [self._to_project(row) for row in session.execute(stmt).scalars()]

    def create_project(
        self, fields: dict, image_url: Optional[str] = None
    ) -> ProjectRecord:
        require_title(fields)
        with self._session() as session:
            row = ProjectRow(image_url=image_url, created_at=_utcnow())
            self._apply_project_fields(row, fields)
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_project(row)

    def update_project(
        self, project_id: str, fields: dict, image_url: Optional[str] = None
    ) -> ProjectRecord:
        require_title(fields)
        key = self._key(project_id)
        with self._session() as session:
            row = session.get(ProjectRow, key) if key is not None else None
            if row is None:
                raise NotFoundError(f"Project {project_id} not found")
            self._apply_project_fields(row, fields)
            if image_url:
                row.image_url = image_url
            session.commit()
            session.refresh(row)
            return self._to_project(row)

    def delete_project(self, project_id: str) -> bool:
        key = self._key(project_id)
        if key is None:
            return False
        with self._session() as session:
            row = session.get(ProjectRow, key)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_certificates(self) -> list[CertificateRecord]:
        with self._session() as session:
            stmt = select(CertificateRow).order_by(
                CertificateRow.created_at.asc(), CertificateRow.id.asc()
            )
            return [
                self._to_certificate(row) for row in session.execute(stmt).scalars()
            ]

    def create_certificate(
        self, fields: dict, image_url: Optional[str] = None
    ) -> CertificateRecord:
        fields = validate_certificate(fields)
        with self._session() as session:
            row = CertificateRow(
                image_url=image_url,
                created_at=_utcnow(),
                **{name: fields.get(name) for name in CERTIFICATE_FIELDS},
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_certificate(row)

    def delete_certificate(self, certificate_id: str) -> bool:
        key = self._key(certificate_id)
        if key is None:
            return False
        with self._session() as session:
            row = session.get(CertificateRow, key)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def get_admin(self, username: str) -> Optional[AdminRecord]:
        with self._session() as session:
            stmt = select(AdminRow).where(AdminRow.username == username)
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                return None
            return AdminRecord(
                id=row.id, username=row.username, password_hash=row.password_hash
            )

    def create_admin(self, username: str, password_hash: str) -> AdminRecord:
        with self._session() as session:
            row = AdminRow(username=username, password_hash=password_hash)
            session.add(row)
            session.commit()
            session.refresh(row)
            return AdminRecord(
                id=row.id, username=row.username, password_hash=row.password_hash
            )

    def count_admins(self) -> int:
        with self._session() as session:
            return session.execute(select(func.count(AdminRow.id))).scalar_one()


Base = declarative_base()


class ProjectRow(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    short_description = Column(Text, nullable=True)
    full_description = Column(Text, nullable=True)
    tech_stack = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    demo_url = Column(Text, nullable=True)
    repo_url = Column(Text, nullable=True)
    created_at = Column(
        DateTime, nullable=False, default=_utcnow, server_default=func.current_timestamp()
    )


class CertificateRow(Base):
    __tablename__ = "certificates"
    __table_args__ = (
        CheckConstraint(
            "status IN ({})".format(", ".join(f"'{s}'" for s in CERTIFICATE_STATUSES)),
            name="ck_certificates_status",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    issuer = Column(Text, nullable=True)
    issue_date = Column(Text, nullable=True)
    credential_url = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default=CertificateStatus.COMPLETED.value)
    progress_percent = Column(Integer, nullable=False, default=100)
    created_at = Column(
        DateTime, nullable=False, default=_utcnow, server_default=func.current_timestamp()
    )


class AdminRow(Base):
    __tablename__ = "admin"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
