"""
High-level LHV Connect operations.

Every call follows the same pipeline: validate input, encode the request, submit it, read the correlation id from the
`Message-Request-Id` header, wait for the matching mailbox message, decode it and shape the result.

Reads (balance, transactions) never raise; anything that goes wrong collapses to a zero balance or an empty list so
a UI built on top stays usable. Writes (transfers) report failures through an explicit status instead.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from config import ConnectConfig, load_connect_config
from core.camt import ReportKind, build_account_report_request, decode_balance_report, decode_statement, default_period
from core.mailbox import MailboxPoller
from core.models import ConnectivityReport, MessageType, NormalizedBalance, PaymentRequest, PaymentState, PaymentStatus, TransactionEntry
from core.pain import build_payment_initiation, decode_payment_status
from core.polling import Clock, PollPolicy, monotonic_clock
from core.transport import ConnectTransport, ContentKind, HttpResult
from exceptions import ConnectError, CorrelationError, ValidationError
from logger import logger

REQUEST_ID_HEADER = "Message-Request-Id"

STATEMENT_TIMEOUT_SECONDS = 60.0
PAYMENT_ACK_TIMEOUT_SECONDS = 10.0
PAYMENT_CONFIRM_TIMEOUT_SECONDS = 5.0

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _elapsed(clock: Clock, started: float) -> float:
    return round(clock() - started, 3)


def _validation_errors(exc: PydanticValidationError) -> List[dict[str, Any]]:
    return [{"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")} for err in exc.errors()]


def to_payment_request(payment: Union[PaymentRequest, Mapping[str, Any]]) -> PaymentRequest:
    """
    Validate a payment order.

    Raises:
        ValidationError: Missing IBANs, a non-positive amount or any other invalid field. Nothing has been sent yet.
    """
    if isinstance(payment, PaymentRequest):
        return payment
    try:
        return PaymentRequest.model_validate(dict(payment))
    except PydanticValidationError as exc:
        errors = _validation_errors(exc)
        fields = ", ".join(e["field"] for e in errors)
        raise ValidationError(f"Invalid payment details: {fields}", errors=errors) from exc


def normalise_period(start_date: Any, end_date: Any, today: date) -> tuple[date, date]:
    """
    Statement period with defaults applied.

    Anything that is not a `date` or a `YYYY-MM-DD` string is replaced by the default (start 30 days ago, end today).

    Raises:
        ValidationError: The start falls after the end.
    """
    default_start, default_end = default_period(today)

    def _coerce(value: Any, fallback: date, label: str) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        text = str(value or "").strip()
        if _ISO_DATE.match(text):
            try:
                return date.fromisoformat(text)
            except ValueError:
                pass
        logger.info(f"Using default {label} date", provided=value, default=fallback.isoformat())
        return fallback

    start = _coerce(start_date, default_start, "start")
    end = _coerce(end_date, default_end, "end")
    if start > end:
        raise ValidationError(f"Start date {start.isoformat()} is after end date {end.isoformat()}")
    return start, end


class ConnectClient:
    """The public face of the client: balance, transactions, transfers and a connectivity probe."""

    def __init__(
        self,
        transport: ConnectTransport,
        poller: Optional[MailboxPoller] = None,
        now: Optional[Callable[[], datetime]] = None,
        clock: Clock = monotonic_clock,
    ) -> None:
        self._transport = transport
        self._poller = poller or MailboxPoller(transport)
        self._now = now or datetime.now
        self._clock = clock

    @classmethod
    def from_config(cls, config: Optional[ConnectConfig] = None) -> "ConnectClient":
        config = config or load_connect_config()
        transport = ConnectTransport(config)
        policy = PollPolicy(timeout_seconds=config.poll_timeout_seconds, interval_seconds=config.poll_interval_seconds)
        return cls(transport, MailboxPoller(transport, policy=policy))

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> "ConnectClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @staticmethod
    def _correlation_id(result: HttpResult, operation: str, required: bool) -> Optional[str]:
        """
        Request id the bank assigned to a submitted command.

        Transfers cannot be matched safely without one, so it is required there. Reads fall back to matching by
        message type alone.
        """
        request_id = result.header(REQUEST_ID_HEADER)
        if request_id:
            return request_id
        if required:
            raise CorrelationError(f"No request ID received from {operation}", operation=operation)
        logger.warning("No request ID received; matching on message type only", operation=operation)
        return None

    # region Reads
    def get_balance(self, iban: str) -> NormalizedBalance:
        """Booked and available balance for `iban`. Any failure gives a zero EUR balance."""
        started = self._clock()
        try:
            request_xml = build_account_report_request(iban, ReportKind.BALANCE, now=self._now())
            result = self._transport.send("POST", "/account-balance", request_xml, ContentKind.XML)
            correlation_id = self._correlation_id(result, "get_balance", required=False)
            logger.info("Balance request sent", request_id=correlation_id)

            payload = self._poller.wait_for_message(MessageType.ACCOUNT_BALANCE, correlation_id=correlation_id)
            if payload is None:
                logger.warning("No balance response received", request_id=correlation_id, elapsed_time=_elapsed(self._clock, started))
                return NormalizedBalance.zero()

            outcome = decode_balance_report(payload)
            if not outcome.is_ok:
                logger.warning("Balance report degraded", reason=outcome.reason, elapsed_time=_elapsed(self._clock, started))
            balance = outcome.value_or(NormalizedBalance.zero())
            logger.info("Balance retrieved", currency=balance.currency, elapsed_time=_elapsed(self._clock, started))
            return balance
        except ConnectError as exc:
            logger.error("Error getting account balance", operation="get_balance", error=str(exc), elapsed_time=_elapsed(self._clock, started))
            return NormalizedBalance.zero()
        except Exception:
            logger.exception("Unexpected error getting account balance", operation="get_balance", elapsed_time=_elapsed(self._clock, started))
            return NormalizedBalance.zero()

    def get_transactions(self, iban: str, start_date: Any = None, end_date: Any = None) -> List[TransactionEntry]:
        """Statement entries for `iban`, most recent first. Any failure gives an empty list."""
        started = self._clock()
        try:
            start, end = normalise_period(start_date, end_date, self._now().date())
            logger.info("Fetching transactions", start_date=start.isoformat(), end_date=end.isoformat())

            request_xml = build_account_report_request(iban, ReportKind.STATEMENT, start, end, now=self._now())
            result = self._transport.send("POST", "/account-statement", request_xml, ContentKind.XML)
            correlation_id = self._correlation_id(result, "get_transactions", required=False)
            logger.info("Statement request sent", request_id=correlation_id)

            payload = self._poller.wait_for_message(MessageType.ACCOUNT_STATEMENT, timeout_seconds=STATEMENT_TIMEOUT_SECONDS, correlation_id=correlation_id)
            if payload is None:
                logger.warning("No statement response received", request_id=correlation_id, elapsed_time=_elapsed(self._clock, started))
                return []

            outcome = decode_statement(payload)
            if not outcome.is_ok:
                logger.warning("Statement degraded", reason=outcome.reason, elapsed_time=_elapsed(self._clock, started))
            entries = outcome.value_or([])
            logger.info("Processed transactions", count=len(entries), elapsed_time=_elapsed(self._clock, started))
            return entries
        except ConnectError as exc:
            logger.error("Error getting transactions", operation="get_transactions", error=str(exc), elapsed_time=_elapsed(self._clock, started))
            return []
        except Exception:
            logger.exception("Unexpected error getting transactions", operation="get_transactions", elapsed_time=_elapsed(self._clock, started))
            return []
    # endregion

    # region Transfers
    def initiate_transfer(self, payment: Union[PaymentRequest, Mapping[str, Any]]) -> PaymentStatus:
        """
        Submit a credit transfer and wait briefly for the bank's first status report.

        Args:
            payment: A `PaymentRequest`, or a mapping with its camelCase keys (`debtorIBAN`, `creditorIBAN`, `amount`, ...).

        Returns:
            PaymentStatus. PENDING with the generated instruction id when no report arrives in time, the bank's status
            code when one does, and FAILED when validation, submission or correlation fails.
        """
        started = self._clock()
        try:
            order = to_payment_request(payment)
        except ValidationError as exc:
            logger.error("Invalid payment request", operation="initiate_transfer", error=str(exc), errors=exc.errors)
            return PaymentStatus(status=PaymentState.FAILED.value, message=str(exc))

        try:
            encoded = build_payment_initiation(order, now=self._now())
            logger.debug("Payment request XML", xml=encoded.xml)

            result = self._transport.send("POST", "/payment", encoded.xml, ContentKind.XML)
            correlation_id = self._correlation_id(result, "payment initiation", required=True)
            logger.info("Payment initiated", request_id=correlation_id, instruction_id=encoded.instruction_id)

            status = PaymentStatus(
                payment_id=encoded.instruction_id,
                status=PaymentState.PENDING.value,
                message="Payment is being processed",
                correlation_id=correlation_id,
            )

            payload = self._poller.wait_for_message(MessageType.PAYMENT, timeout_seconds=PAYMENT_ACK_TIMEOUT_SECONDS, correlation_id=correlation_id)
            if payload is None:
                logger.info("No payment status yet", request_id=correlation_id, elapsed_time=_elapsed(self._clock, started))
                return status

            outcome = decode_payment_status(payload, encoded.instruction_id)
            if not outcome.is_ok or outcome.value is None:
                logger.warning("Payment status report unreadable; keeping provisional status", reason=outcome.reason, request_id=correlation_id)
                return status

            report = outcome.value
            logger.info("Payment status received", payment_id=report.payment_id, status=report.status, elapsed_time=_elapsed(self._clock, started))
            return PaymentStatus(
                payment_id=report.payment_id or encoded.instruction_id,
                status=report.status,
                message=report.reason or status.message,
                correlation_id=correlation_id,
            )
        except ConnectError as exc:
            logger.error("Error initiating transfer", operation="initiate_transfer", error=str(exc), elapsed_time=_elapsed(self._clock, started))
            return PaymentStatus(status=PaymentState.FAILED.value, message=str(exc))
        except Exception as exc:
            logger.exception("Unexpected error initiating transfer", operation="initiate_transfer", elapsed_time=_elapsed(self._clock, started))
            return PaymentStatus(status=PaymentState.FAILED.value, message=str(exc))

    def confirm_transfer(self, payment_id: Optional[str], correlation_id: Optional[str] = None) -> PaymentStatus:
        """
        Check for a follow-up status report on a submitted payment.

        LHV confirms as part of the initiation flow, so no news within the wait means the payment is still being
        processed and is reported as ACCEPTED. A rejection carries the bank's reason.
        """
        started = self._clock()
        status = PaymentStatus(payment_id=payment_id, status=PaymentState.ACCEPTED.value, message="Payment processing", correlation_id=correlation_id)
        try:
            payload = self._poller.wait_for_message(MessageType.PAYMENT, timeout_seconds=PAYMENT_CONFIRM_TIMEOUT_SECONDS, correlation_id=correlation_id)
            if payload is None:
                logger.info("No payment status update", payment_id=payment_id, elapsed_time=_elapsed(self._clock, started))
                return status

            outcome = decode_payment_status(payload, payment_id)
            if not outcome.is_ok or outcome.value is None:
                logger.warning("Payment status report unreadable", payment_id=payment_id, reason=outcome.reason)
                return PaymentStatus(
                    payment_id=payment_id,
                    status=PaymentState.UNKNOWN.value,
                    message=f"Payment status unknown: {outcome.reason}",
                    correlation_id=correlation_id,
                )

            report = outcome.value
            logger.info("Payment status update received", payment_id=report.payment_id, status=report.status, elapsed_time=_elapsed(self._clock, started))
            message = report.reason if report.status == PaymentState.REJECTED and report.reason else status.message
            return PaymentStatus(payment_id=report.payment_id or payment_id, status=report.status, message=message, correlation_id=correlation_id)
        except Exception as exc:
            logger.warning("Error in confirm transfer", operation="confirm_transfer", payment_id=payment_id, error=str(exc), elapsed_time=_elapsed(self._clock, started))
            return PaymentStatus(
                payment_id=payment_id,
                status=PaymentState.UNKNOWN.value,
                message=f"Payment status unknown due to error: {exc}",
                correlation_id=correlation_id,
            )

    def make_transfer(self, payment: Union[PaymentRequest, Mapping[str, Any]]) -> PaymentStatus:
        """Initiate a transfer and, unless that already failed or was rejected, confirm it on the same request id."""
        initiated = self.initiate_transfer(payment)
        if initiated.status in (PaymentState.FAILED, PaymentState.REJECTED) or not initiated.payment_id:
            return initiated

        confirmed = self.confirm_transfer(initiated.payment_id, correlation_id=initiated.correlation_id)
        if not confirmed.is_accepted:
            logger.warning("Payment confirmation failed", payment_id=initiated.payment_id, status=confirmed.status, reason=confirmed.message)
        return confirmed
    # endregion

    def check_connectivity(self) -> ConnectivityReport:
        """Use the mailbox message count as a cheap round trip to the bank."""
        interface = self._transport.interface_ip
        try:
            count = self._poller.message_count()
            logger.info("Connectivity check succeeded", message_count=count, interface=interface)
            return ConnectivityReport(success=True, message_count=count, interface=interface)
        except ConnectError as exc:
            logger.error("Connectivity check failed", error=str(exc), interface=interface)
            return ConnectivityReport(success=False, error=str(exc), interface=interface)
