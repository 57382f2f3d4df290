"""
Pydantic models used across the client.

These are small, focused schemas that:
- Validate the mailbox JSON envelopes returned by LHV Connect (`MessageCount`, `MessageList`, `MailboxMessage`)
- Validate caller input for payments before anything is sent (`PaymentRequest`)
- Provide the normalized records handed back to callers (`NormalizedBalance`, `TransactionEntry`, `PaymentStatus`)

The bank and the GUI both speak camelCase; we expose snake_case attributes via field aliases and dump with
`by_alias=True` when a dict is needed.
"""

from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

DEFAULT_CURRENCY = "EUR"


class MessageType(StrEnum):
    ACCOUNT_BALANCE = "ACCOUNT_BALANCE"
    ACCOUNT_STATEMENT = "ACCOUNT_STATEMENT"
    PAYMENT = "PAYMENT"


class PaymentState(StrEnum):
    """Client-side payment states. Bank status codes (ACSC, RJCT, ...) are passed through as-is."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "RJCT"
    UNKNOWN = "UNKNOWN"
    FAILED = "FAILED"


# ISO 20022 ExternalPaymentTransactionStatus codes grouped by what they mean to a caller.
ACCEPTED_STATUS_CODES = frozenset({"ACCEPTED", "ACCP", "ACSC", "ACSP", "ACTC", "ACWC", "ACCC", "ACFC", "ACPD"})
PENDING_STATUS_CODES = frozenset({"PENDING", "PDNG", "RCVD", "PART"})


# region Mailbox envelopes
class MessageCount(BaseModel):
    count: int = 0


class MailboxMessage(BaseModel):
    """One pending message as listed by `GET /messages`."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="messageResponseId")
    response_type: str = Field(default="", alias="messageResponseType")
    request_id: Optional[str] = Field(default=None, alias="messageRequestId")
    created_at: Optional[str] = Field(default=None, alias="messageCreatedTime")

    @field_validator("request_id", mode="before")
    def _blank_request_id_is_none(cls, v: Any) -> Optional[str]:  # type: ignore[no-untyped-def]
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def summary(self) -> Dict[str, Optional[str]]:
        return {"id": self.id, "type": self.response_type, "requestId": self.request_id, "createdTime": self.created_at}


class MessageList(BaseModel):
    messages: List[MailboxMessage] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    def _none_is_empty(cls, v: Any) -> Any:  # type: ignore[no-untyped-def]
        return v or []
# endregion


# region Normalized records
class NormalizedBalance(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booked_amount: Decimal = Field(default=Decimal("0"), alias="balance")
    available_amount: Decimal = Field(default=Decimal("0"), alias="available")
    currency: str = DEFAULT_CURRENCY

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "NormalizedBalance":
        return cls(booked_amount=Decimal("0"), available_amount=Decimal("0"), currency=currency)

    # Arithmetic stays in Decimal; JSON output converts once, at serialization, for display
    @field_serializer("booked_amount", "available_amount", when_used="json")
    def _amount_as_number(self, v: Decimal) -> float:
        return float(v)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Counterparty(BaseModel):
    name: str = ""
    account: str = ""


class TransactionEntry(BaseModel):
    """One booked statement entry, signed and enriched with the running balance after it was applied."""

    model_config = ConfigDict(populate_by_name=True)

    booking_date: str = Field(default="", alias="bookingDate")
    value_date: str = Field(default="", alias="valueDate")
    amount: Decimal = Decimal("0")
    currency: str = DEFAULT_CURRENCY
    type: str = "Unknown"
    status: str = ""
    reference: str = ""
    description: str = ""
    running_balance: Decimal = Field(default=Decimal("0"), alias="balance")
    counterparty: Optional[Counterparty] = None

    @field_serializer("amount", "running_balance", when_used="json")
    def _amount_as_number(self, v: Decimal) -> float:
        return float(v)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PaymentStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: Optional[str] = Field(default=None, alias="paymentId")
    status: str = PaymentState.PENDING.value
    message: str = ""
    correlation_id: Optional[str] = Field(default=None, alias="correlationId")

    @property
    def is_rejected(self) -> bool:
        return self.status == PaymentState.REJECTED

    @property
    def is_accepted(self) -> bool:
        return self.status in ACCEPTED_STATUS_CODES

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUS_CODES

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PaymentStatusReport(BaseModel):
    """What a pain.002 status report says about the first transaction in it."""

    payment_id: Optional[str] = None
    status: str = PaymentState.PENDING.value
    reason: Optional[str] = None


class ConnectivityReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message_count: Optional[int] = Field(default=None, alias="messageCount")
    interface: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
# endregion


# region Payment input
class PaymentRequest(BaseModel):
    """
    Typed payment order.

    Accepts the same camelCase keys the GUI form posts (e.g. `debtorIBAN`); pydantic aliases expose snake_case
    attributes. Validation failures here stop a transfer before any request is built.
    """

    model_config = ConfigDict(populate_by_name=True)

    debtor_iban: str = Field(alias="debtorIBAN", min_length=1)
    creditor_iban: str = Field(alias="creditorIBAN", min_length=1)
    amount: Decimal = Field(gt=0, decimal_places=2)
    currency: str = Field(default=DEFAULT_CURRENCY, pattern=r"^[A-Z]{3}$")
    debtor_name: Optional[str] = Field(default=None, alias="debtorName")
    creditor_name: Optional[str] = Field(default=None, alias="creditorName")
    creditor_bic: Optional[str] = Field(default=None, alias="creditorBIC")
    reference: Optional[str] = None
    description: Optional[str] = None
    requested_execution_date: Optional[date] = Field(default=None, alias="requestedExecutionDate")
    debtor_town: str = Field(default="Tallinn", alias="debtorTown")
    debtor_country: str = Field(default="EE", alias="debtorCountry")
    creditor_town: str = Field(default="Tallinn", alias="creditorTown")
    creditor_country: str = Field(default="EE", alias="creditorCountry")

    @field_validator("debtor_iban", "creditor_iban", mode="before")
    def _normalise_iban(cls, v: Any) -> str:  # type: ignore[no-untyped-def]
        # IBANs are often pasted with grouping spaces
        if v is None:
            return ""
        return "".join(str(v).split()).upper()

    @field_validator("currency", mode="before")
    def _upper_currency(cls, v: Any) -> str:  # type: ignore[no-untyped-def]
        if v is None or str(v).strip() == "":
            return DEFAULT_CURRENCY
        return str(v).strip().upper()

    @field_validator("debtor_name", "creditor_name", "creditor_bic", "reference", "description", mode="before")
    def _blank_is_none(cls, v: Any) -> Optional[str]:  # type: ignore[no-untyped-def]
        if v is None:
            return None
        v = str(v).strip()
        return v or None
# endregion
