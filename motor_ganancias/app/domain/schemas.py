"""
schemas.py
----------
Schemas Pydantic para validación de requests y responses.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# ─────────────────────────────────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────────────────────────────────

class PayoutRail(str, Enum):
    CARD_ACQUIRER  = "card_acquirer"
    DIGITAL_WALLET = "digital_wallet"
    BANK_TRANSFER  = "bank_transfer"
    GLOBAL_PAYOUT  = "global_payout"


class AccountStatus(str, Enum):
    PENDING    = "pending"
    ACTIVE     = "active"
    RESTRICTED = "restricted"
    DISABLED   = "disabled"


class PaymentMode(str, Enum):
    MANUAL    = "manual"
    AUTOMATIC = "automatic"


class RiskLevel(str, Enum):
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"


class PayoutStatus(str, Enum):
    PENDING   = "pending"
    COMPLETED = "completed"
    FAILED    = "failed"


class AlertStatus(str, Enum):
    PENDING   = "pending"
    REVIEWED  = "reviewed"
    DISMISSED = "dismissed"


class PaymentMethod(str, Enum):
    CARD           = "card"
    DIGITAL_WALLET = "digital_wallet"
    WALLET         = "wallet"


# ─────────────────────────────────────────────────────────────────────
# EVALUACIÓN DE RIESGO
# ─────────────────────────────────────────────────────────────────────

class RiskAssessmentParams(BaseModel):
    user_id:            Optional[str]           = None
    amount_cents:       int                     = Field(..., ge=0)
    currency:           str                     = Field(..., min_length=3, max_length=3)
    ip_address:         Optional[str]           = None
    country_code:       Optional[str]           = Field(None, min_length=2, max_length=2)
    device_fingerprint: Optional[str]           = None
    user_agent:         Optional[str]           = None
    payment_method:     Optional[PaymentMethod] = None

    @field_validator("currency", "country_code")
    @classmethod
    def upper(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    model_config = ConfigDict(extra="ignore")


class RiskFactor(BaseModel):
    """Un factor individual del score, con su contribución."""
    type:        str
    severity:    RiskLevel
    description: str
    score:       float


class RiskAssessmentResult(BaseModel):
    risk_score:           float     = Field(..., ge=0, le=1)
    risk_level:           RiskLevel
    risk_factors:         List[RiskFactor]
    requires_strong_auth: bool
    recommendation:       str


# ─────────────────────────────────────────────────────────────────────
# CONEXIÓN DE CUENTAS DE COBRO
# ─────────────────────────────────────────────────────────────────────

class DigitalWalletConnect(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    model_config = ConfigDict(extra="ignore")


class BankTransferConnect(BaseModel):
    routing_number:      str = Field(..., min_length=9, max_length=9)
    account_number:      str = Field(..., min_length=4, max_length=17)
    account_holder_name: str = Field(..., min_length=2, max_length=100)

    @field_validator("routing_number", "account_number", mode="before")
    @classmethod
    def strip_spaces(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.replace(" ", "")
        return v

    @field_validator("routing_number", "account_number")
    @classmethod
    def digits_only(cls, v: str) -> str:
        if not v.isdigit():
            raise ValueError("Solo se permiten dígitos.")
        return v

    @field_validator("account_holder_name")
    @classmethod
    def holder_name(cls, v: str) -> str:
        """El identificador se guarda como routing:account:name, sin ':' en el nombre."""
        v = v.strip()
        if len(v) < 2:
            raise ValueError("El nombre del titular es obligatorio.")
        if ":" in v or not re.match(r"^[\w .,'-]+$", v):
            raise ValueError("El nombre del titular contiene caracteres inválidos.")
        return v

    model_config = ConfigDict(extra="ignore")


class GlobalPayoutConnect(BaseModel):
    payee_id: str = Field(..., min_length=1, max_length=100)

    @field_validator("payee_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("El Payee ID es obligatorio.")
        return v

    model_config = ConfigDict(extra="ignore")


class DisconnectedAccount(BaseModel):
    state: Literal["disconnected"] = "disconnected"


class ConnectedAccount(BaseModel):
    state:              Literal["connected"] = "connected"
    user_id:            str
    # str y no PayoutRail: la DB puede contener rails ya retirados
    rail:               str
    account_identifier: Optional[str] = None
    status:             AccountStatus
    created_at:         Optional[datetime] = None
    updated_at:         Optional[datetime] = None


PayoutAccountState = Annotated[
    Union[DisconnectedAccount, ConnectedAccount],
    Field(discriminator="state"),
]


class ConnectResult(BaseModel):
    account: ConnectedAccount
    created: bool


class DisconnectResult(BaseModel):
    removed:  bool
    previous: Optional[ConnectedAccount] = None


# ─────────────────────────────────────────────────────────────────────
# PAYOUTS
# ─────────────────────────────────────────────────────────────────────

class ThresholdUpdate(BaseModel):
    threshold_cents: int

    model_config = ConfigDict(extra="forbid")


class PayoutOutcome(BaseModel):
    processed:         bool
    reason:            Optional[str]      = None   # "below_threshold"
    message:           Optional[str]      = None
    available_cents:   Optional[int]      = None
    minimum_cents:     Optional[int]      = None
    threshold_cents:   Optional[int]      = None
    amount_cents:      Optional[int]      = None
    payout_id:         Optional[str]      = None
    estimated_arrival: Optional[datetime] = None
    rail:              Optional[PayoutRail] = None
    ledger_debited:    Optional[bool]     = None


class AutoPayoutStatus(BaseModel):
    enabled:         bool
    eligible:        bool
    available_cents: int
    minimum_cents:   int
    maximum_cents:   int
    threshold_cents: int
    payment_mode:    PaymentMode
    payout_account:  Optional[ConnectedAccount] = None


class WalletTransferRequest(BaseModel):
    amount_cents: int

    model_config = ConfigDict(extra="forbid")


class WalletTransferResult(BaseModel):
    transferred_cents:    int
    available_cents:      int
    wallet_balance_cents: int


# ─────────────────────────────────────────────────────────────────────
# EVENTOS EXTERNOS DE FRAUDE
# Llegan ya verificados por el receptor de webhooks.
# ─────────────────────────────────────────────────────────────────────

class FraudEventData(BaseModel):
    object: dict[str, Any]


class FraudEvent(BaseModel):
    id:      Optional[str] = None
    type:    str
    created: int            # epoch en segundos
    data:    FraudEventData

    model_config = ConfigDict(extra="ignore")
