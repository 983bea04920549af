import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from solgate.db.base import Base
from solgate.db.session import build_session_factory
from solgate.models.custodial_session import CustodialSession
from solgate.services.sessions.base import SessionRecord, SessionStore

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = (
    "is_paid",
    "amount_received",
    "payment_tx_ref",
    "payment_received_at",
    "access_expires_at",
    "client_fingerprint",
    "swept_amount",
    "last_swept_at",
    "last_sweep_tx_ref",
)


def _aware(value: datetime | None) -> datetime | None:
    # sqlite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: CustodialSession) -> SessionRecord:
    return SessionRecord(
        session_id=row.id,
        custodial_address=row.custodial_address,
        custodial_secret=row.custodial_secret,
        created_at=_aware(row.created_at),
        trial_expires_at=_aware(row.trial_expires_at),
        reference_id=row.reference_id,
        is_paid=bool(row.is_paid),
        amount_received=row.amount_received or 0,
        payment_tx_ref=row.payment_tx_ref,
        payment_received_at=_aware(row.payment_received_at),
        access_expires_at=_aware(row.access_expires_at),
        client_fingerprint=row.client_fingerprint,
        swept_amount=row.swept_amount or 0,
        last_swept_at=_aware(row.last_swept_at),
        last_sweep_tx_ref=row.last_sweep_tx_ref,
        version=row.version or 0,
    )


class SqlSessionStore(SessionStore):
    """
    SQLAlchemy-backed store. Atomicity of updates comes from a conditional
    UPDATE ... WHERE version = :expected and its rowcount.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = build_session_factory(engine)

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine, tables=[CustodialSession.__table__])

    def ping(self) -> None:
        with self._engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")

    def get(self, session_id: str) -> SessionRecord | None:
        with self._session_factory() as db:
            row = db.get(CustodialSession, session_id)
            return _to_record(row) if row else None

    def put(self, record: SessionRecord) -> None:
        row = CustodialSession(
            id=record.session_id,
            custodial_address=record.custodial_address,
            custodial_secret=record.custodial_secret,
            reference_id=record.reference_id,
            client_fingerprint=record.client_fingerprint,
            created_at=record.created_at,
            trial_expires_at=record.trial_expires_at,
            is_paid=record.is_paid,
            amount_received=record.amount_received,
            payment_tx_ref=record.payment_tx_ref,
            payment_received_at=record.payment_received_at,
            access_expires_at=record.access_expires_at,
            swept_amount=record.swept_amount,
            last_swept_at=record.last_swept_at,
            last_sweep_tx_ref=record.last_sweep_tx_ref,
            version=record.version,
        )
        with self._session_factory() as db:
            db.add(row)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise ValueError(f"Session already exists: {record.session_id[:8]}") from e

    def list_all(self) -> list[SessionRecord]:
        with self._session_factory() as db:
            rows = db.execute(
                select(CustodialSession).order_by(CustodialSession.created_at)
            ).scalars().all()
            return [_to_record(r) for r in rows]

    def update_if_unchanged(self, record: SessionRecord, expected_version: int) -> bool:
        values = {name: getattr(record, name) for name in _MUTABLE_FIELDS}
        values["version"] = expected_version + 1
        with self._session_factory() as db:
            result = db.execute(
                update(CustodialSession)
                .where(
                    CustodialSession.id == record.session_id,
                    CustodialSession.version == expected_version,
                )
                .values(**values)
            )
            db.commit()
            updated = result.rowcount == 1
        if not updated:
            logger.info(
                "session_update_conflict",
                extra={"session_id": record.session_id[:8]},
            )
        return updated

    def delete(self, session_id: str) -> bool:
        with self._session_factory() as db:
            result = db.execute(delete(CustodialSession).where(CustodialSession.id == session_id))
            db.commit()
            return result.rowcount == 1

    def _find_one(self, *criteria) -> SessionRecord | None:
        with self._session_factory() as db:
            row = db.execute(select(CustodialSession).where(*criteria)).scalars().first()
            return _to_record(row) if row else None

    def find_by_address(self, address: str) -> SessionRecord | None:
        return self._find_one(CustodialSession.custodial_address == address)

    def find_by_reference(self, reference_id: str) -> SessionRecord | None:
        return self._find_one(CustodialSession.reference_id == reference_id)

    def find_by_payment_ref(self, tx_ref: str) -> SessionRecord | None:
        return self._find_one(CustodialSession.payment_tx_ref == tx_ref)
