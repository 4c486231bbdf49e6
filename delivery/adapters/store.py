"""Message store over SQLAlchemy.

Two logical connections: reads go to the replica engine, writes to the
primary. Every SQLAlchemy failure surfaces as InfrastructureError so the
consumer can leave the envelope unacknowledged.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import UTC, datetime
import logging
from typing import Any, Iterator
import uuid as uuid_lib

from sqlalchemy import (
    JSON,
    DateTime,
    Engine,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..domain.models import STATUS_ACTIVE, Channel, MessageStatus
from ..errors import InfrastructureError

log = logging.getLogger("delivery.store")


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def new_uuid() -> str:
    return str(uuid_lib.uuid4())


class Base(DeclarativeBase):
    pass


class MessageRecord(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    channel: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    identifiers: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    categories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    refno: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=MessageStatus.ACCEPTED.value, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class MessageEventRecord(Base):
    __tablename__ = "message_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, default=new_uuid)
    message_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("messages.uuid", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # "metadata" is reserved on declarative classes.
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


class TemplateRecord(Base):
    __tablename__ = "templates"
    __table_args__ = (UniqueConstraint("tenant", "code", "channel", name="uq_templates_tenant_code_channel"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, default=new_uuid)
    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0, index=True)
    channel: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    template_ids: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    tenant: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ProviderRecord(Base):
    __tablename__ = "providers"
    __table_args__ = (UniqueConstraint("tenant", "code", "channel", name="uq_providers_tenant_code_channel"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, default=new_uuid)
    code: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    secure_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0, index=True)
    channel: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    tenant: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class MessageStore:
    """Persistence contract for Message/MessageEvent plus template/provider reads."""

    def __init__(self, primary: Engine, replica: Engine | None = None) -> None:
        self._primary = sessionmaker(bind=primary, expire_on_commit=False)
        self._replica = sessionmaker(bind=replica or primary, expire_on_commit=False)
        self._primary_engine = primary

    @classmethod
    def from_urls(cls, database_url: str, replica_url: str | None = None) -> "MessageStore":
        primary = create_engine(database_url, pool_pre_ping=True)
        replica = create_engine(replica_url, pool_pre_ping=True) if replica_url else None
        return cls(primary, replica)

    def create_schema(self) -> None:
        with _translate_errors("create schema"):
            Base.metadata.create_all(self._primary_engine)

    # Messages

    def insert_message(
        self,
        *,
        uuid: str,
        channel: Channel,
        refno: str,
        identifiers: dict[str, Any] | None = None,
        categories: list[str] | None = None,
        status: MessageStatus = MessageStatus.ACCEPTED,
    ) -> MessageRecord:
        record = MessageRecord(
            uuid=uuid,
            channel=Channel(channel).value,
            refno=refno,
            identifiers=dict(identifiers or {}),
            categories=list(categories or []),
            status=MessageStatus(status).value,
        )
        with self._write("insert message") as session:
            session.add(record)
        log.debug("[STORE] inserted message uuid=%s channel=%s", uuid, record.channel)
        return record

    def get_message(self, uuid: str, *, from_primary: bool = False) -> MessageRecord | None:
        factory = self._primary if from_primary else self._replica
        with _translate_errors("get message"), factory() as session:
            return session.scalars(select(MessageRecord).where(MessageRecord.uuid == uuid)).first()

    def ensure_message(
        self,
        *,
        uuid: str,
        channel: Channel,
        refno: str,
        identifiers: dict[str, Any] | None = None,
        categories: list[str] | None = None,
    ) -> tuple[MessageRecord, bool]:
        """Insert an ACCEPTED row for `uuid` unless one already exists.

        Returns (row, created). Safe under concurrent redelivery: the unique
        constraint on uuid decides the winner, the loser reads the row back.
        """
        now = utcnow()
        values = {
            "uuid": uuid,
            "channel": Channel(channel).value,
            "refno": refno,
            "identifiers": dict(identifiers or {}),
            "categories": list(categories or []),
            "status": MessageStatus.ACCEPTED.value,
            "created_at": now,
            "updated_at": now,
        }
        created = False
        with _translate_errors("ensure message"), self._primary() as session:
            statement = _insert_ignoring_duplicates(session, values)
            if statement is not None:
                result = session.execute(statement)
                created = bool(result.rowcount)
                session.commit()
            else:
                try:
                    session.execute(insert(MessageRecord).values(**values))
                    session.commit()
                    created = True
                except IntegrityError:
                    session.rollback()
            record = session.scalars(select(MessageRecord).where(MessageRecord.uuid == uuid)).one()
        return record, created

    def set_status(self, uuid: str, status: MessageStatus) -> None:
        with self._write("update message status") as session:
            result = session.execute(
                update(MessageRecord)
                .where(MessageRecord.uuid == uuid)
                .values(status=MessageStatus(status).value, updated_at=utcnow())
            )
            if not result.rowcount:
                raise InfrastructureError(f"message {uuid} not found on primary when updating status")
        log.debug("[STORE] message uuid=%s status=%s", uuid, status)

    # Events

    def append_event(
        self,
        message_uuid: str,
        status: MessageStatus,
        *,
        reason: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> MessageEventRecord:
        now = utcnow()
        event = MessageEventRecord(
            uuid=new_uuid(),
            message_id=message_uuid,
            status=MessageStatus(status).value,
            reason=reason,
            event_metadata=metadata,
            timestamp=now,
            created_at=now,
        )
        with self._write("append message event") as session:
            session.add(event)
        return event

    def list_events(self, message_uuid: str, *, from_primary: bool = False) -> list[MessageEventRecord]:
        factory = self._primary if from_primary else self._replica
        with _translate_errors("list message events"), factory() as session:
            statement = (
                select(MessageEventRecord)
                .where(MessageEventRecord.message_id == message_uuid)
                .order_by(MessageEventRecord.timestamp, MessageEventRecord.id)
            )
            return list(session.scalars(statement))

    # Templates and providers (read-only for the pipeline)

    def find_active_template(self, ref: str, *, tenant: str, channel: Channel) -> TemplateRecord | None:
        with _translate_errors("find template"), self._replica() as session:
            statement = select(TemplateRecord).where(
                or_(TemplateRecord.uuid == ref, TemplateRecord.code == ref),
                TemplateRecord.tenant == tenant,
                TemplateRecord.channel == Channel(channel).value,
                TemplateRecord.status == STATUS_ACTIVE,
            )
            return session.scalars(statement.limit(1)).first()

    def find_active_provider(self, ref: str, *, channel: Channel) -> ProviderRecord | None:
        with _translate_errors("find provider"), self._replica() as session:
            statement = select(ProviderRecord).where(
                or_(ProviderRecord.uuid == ref, ProviderRecord.code == ref),
                ProviderRecord.channel == Channel(channel).value,
                ProviderRecord.status == STATUS_ACTIVE,
            )
            return session.scalars(statement.limit(1)).first()

    def save_template(self, record: TemplateRecord) -> TemplateRecord:
        with self._write("save template") as session:
            session.add(record)
        return record

    def save_provider(self, record: ProviderRecord) -> ProviderRecord:
        with self._write("save provider") as session:
            session.add(record)
        return record

    @contextmanager
    def _write(self, action: str) -> Iterator[Session]:
        with _translate_errors(action), self._primary() as session:
            with session.begin():
                yield session


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        log.error("[STORE ERROR] action=%s error=%s", action, exc)
        raise InfrastructureError(f"failed to {action}: {exc}") from exc


def _insert_ignoring_duplicates(session: Session, values: dict[str, Any]) -> Any:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    else:
        return None
    return dialect_insert(MessageRecord).values(**values).on_conflict_do_nothing(index_elements=["uuid"])
