"""
models.py
---------
Modelos SQLAlchemy para el Motor de Ganancias.

Tablas:
  - EarningsLedger     → saldo de comisiones disponibles por usuario
  - PayoutAccount      → único destino de cobro externo por usuario
  - PayoutPreference   → umbral de pago automático elegido por el usuario
  - PayoutTransaction  → registro de cada transferencia aceptada por un rail
  - FraudAlert         → alertas generadas por eventos externos de fraude
  - UserBlacklist      → usuarios bloqueados (manual o automáticamente)
  - PayoutSettings     → modo de pago y mínimo configurados por admins
  - RailGateway        → rails habilitados y sus credenciales
  - UserProfile        → fecha de alta del usuario (antigüedad de cuenta)
  - WalletBalance      → saldo de la wallet interna
  - WalletTransaction  → movimientos de la wallet (velocidad de transacciones)

Principios de diseño:
  - Montos siempre en centavos como enteros, nunca float
  - user_id es la referencia externa del usuario (string opaco)
  - created_at siempre con timezone=True
  - Las restricciones de unicidad garantizan un destino y un bloqueo por usuario
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


# ─────────────────────────────────────────────────────────────────────
# LEDGER DE GANANCIAS
# Solo se modifica con UPDATE condicional atómico (ver ledger_repository).
# ─────────────────────────────────────────────────────────────────────
class EarningsLedger(Base):
    __tablename__ = "earnings_ledger"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    available_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, server_default="0"
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, server_default="USD"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint("available_cents >= 0", name="ck_ledger_non_negative"),
    )


# ─────────────────────────────────────────────────────────────────────
# CUENTA DE COBRO
# user_id único → como máximo un rail conectado por usuario.
# ─────────────────────────────────────────────────────────────────────
class PayoutAccount(Base):
    __tablename__ = "payout_accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # "card_acquirer" | "digital_wallet" | "bank_transfer" | "global_payout"
    rail: Mapped[str] = mapped_column(String(30), nullable=False)

    # Identificador opaco, codificación propia de cada rail
    account_identifier: Mapped[str] = mapped_column(String(255), nullable=True)

    # "pending" | "active" | "restricted" | "disabled"
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="pending"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class PayoutPreference(Base):
    __tablename__ = "payout_preferences"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    auto_payout_threshold_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


# ─────────────────────────────────────────────────────────────────────
# TRANSACCIONES DE PAYOUT
# Solo se insertan después de que el rail confirmó la transferencia.
# ─────────────────────────────────────────────────────────────────────
class PayoutTransaction(Base):
    __tablename__ = "payout_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    rail: Mapped[str] = mapped_column(String(30), nullable=False)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # "pending" | "completed" | "failed"
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="pending"
    )
    estimated_arrival: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("idx_payout_tx_user_created", "user_id", "created_at"),
    )


# ─────────────────────────────────────────────────────────────────────
# ALERTAS DE FRAUDE
# Las crea FraudAlertIngestor. El procesador de payouts nunca las modifica.
# ─────────────────────────────────────────────────────────────────────
class FraudAlert(Base):
    __tablename__ = "fraud_alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False)
    risk_level: Mapped[str] = mapped_column(String(10), nullable=False)
    risk_factors: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )
    fraud_stats: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )

    # Claves de deduplicación del evento externo
    event_type: Mapped[str] = mapped_column(String(60), nullable=False)
    external_event_id: Mapped[str] = mapped_column(String(255), nullable=True)

    # "pending" | "reviewed" | "dismissed"
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="pending"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("idx_fraud_alerts_user_status", "user_id", "status", "created_at"),
        Index("idx_fraud_alerts_event", "event_type", "external_event_id"),
    )


# ─────────────────────────────────────────────────────────────────────
# BLACKLIST
# blocked_by NULL = bloqueo automático del sistema.
# ─────────────────────────────────────────────────────────────────────
class UserBlacklist(Base):
    __tablename__ = "user_blacklist"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    fraud_type: Mapped[str] = mapped_column(String(50), nullable=False)
    blocked_by: Mapped[str] = mapped_column(String(64), nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


# ─────────────────────────────────────────────────────────────────────
# CONFIGURACIÓN DE PLATAFORMA
# ─────────────────────────────────────────────────────────────────────
class PayoutSettings(Base):
    __tablename__ = "payout_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # "manual" | "automatic"
    payment_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="automatic"
    )
    default_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=True)


class RailGateway(Base):
    __tablename__ = "rail_gateways"

    rail: Mapped[str] = mapped_column(String(30), primary_key=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)

    # "payment" | "payout" | "both"
    functionality: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="payment"
    )

    # {"mode": "test"|"production", "secret": ..., "testSecret": ...}
    credentials: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )


# ─────────────────────────────────────────────────────────────────────
# USUARIO Y WALLET INTERNA
# Solo lectura para el motor de riesgo; la wallet recibe transferencias
# manuales desde el ledger de ganancias.
# ─────────────────────────────────────────────────────────────────────
class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


class WalletBalance(Base):
    __tablename__ = "wallet_balances"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, server_default="0"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # "sale_commission" | "purchase" | ...
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    meta: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("idx_wallet_tx_user_created", "user_id", "created_at"),
    )
