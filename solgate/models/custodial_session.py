from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text

from solgate.db.base import Base


class CustodialSession(Base):
    __tablename__ = "custodial_sessions"

    id = Column(String(64), primary_key=True)
    custodial_address = Column(String(64), nullable=False, unique=True, index=True)
    custodial_secret = Column(Text, nullable=False)
    reference_id = Column(String(64), nullable=False, index=True)
    client_fingerprint = Column(String(64), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    trial_expires_at = Column(DateTime(timezone=True), nullable=False)

    # Payment (set once, together with is_paid)
    is_paid = Column(Boolean, nullable=False, default=False)
    amount_received = Column(BigInteger, nullable=False, default=0)
    payment_tx_ref = Column(String(128), nullable=True, index=True)
    payment_received_at = Column(DateTime(timezone=True), nullable=True)
    access_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Sweep bookkeeping
    swept_amount = Column(BigInteger, nullable=False, default=0)
    last_swept_at = Column(DateTime(timezone=True), nullable=True)
    last_sweep_tx_ref = Column(String(128), nullable=True)

    version = Column(Integer, nullable=False, default=0)
