"""
Payments: pain.001 credit transfer initiation out, pain.002 customer payment status reports in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from core.models import PaymentRequest, PaymentState, PaymentStatusReport
from core.results import Outcome
from core.xml_tree import excerpt, new_document, new_message_id, parse_xml, sub, to_xml_string
from exceptions import ParseError
from logger import logger

PAYMENT_INITIATION_NS = "urn:iso:std:iso:20022:tech:xsd:pain.001.001.09"
DEBTOR_AGENT_BIC = "LHVBEE22"
DEFAULT_DEBTOR_NAME = "LHV Connect Client"
DEFAULT_CREDITOR_NAME = "Payment Recipient"
MAX_REMITTANCE_LENGTH = 140

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class EncodedPayment:
    """A serialized pain.001 document and the identifiers generated for it."""

    xml: str
    message_id: str
    payment_info_id: str
    instruction_id: str


def format_amount(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP))


def build_payment_initiation(payment: PaymentRequest, now: Optional[datetime] = None) -> EncodedPayment:
    """
    Build a single-transaction pain.001.001.09 credit transfer.

    The service level is left as proprietary `ALL` so the bank chooses the scheme (instant, SEPA or SWIFT).

    Args:
        payment: Validated payment order.
        now: Clock override for the creation timestamp and default execution date.

    Returns:
        EncodedPayment with the generated message, payment-information and instruction ids.
    """
    now = now or datetime.now()
    amount = format_amount(payment.amount)
    debtor_name = payment.debtor_name or DEFAULT_DEBTOR_NAME
    execution_date = payment.requested_execution_date or now.date()

    message_id = new_message_id("MSG")
    payment_info_id = new_message_id("PMT")
    instruction_id = new_message_id("INSTR")

    root = new_document(PAYMENT_INITIATION_NS)
    initiation = sub(root, "CstmrCdtTrfInitn")

    header = sub(initiation, "GrpHdr")
    sub(header, "MsgId", message_id)
    sub(header, "CreDtTm", now.strftime("%Y-%m-%dT%H:%M:%S"))
    sub(header, "NbOfTxs", "1")
    sub(header, "CtrlSum", amount)
    sub(sub(header, "InitgPty"), "Nm", debtor_name)

    info = sub(initiation, "PmtInf")
    sub(info, "PmtInfId", payment_info_id)
    sub(info, "PmtMtd", "TRF")
    sub(info, "BtchBookg", "false")
    sub(info, "NbOfTxs", "1")
    sub(info, "CtrlSum", amount)
    sub(sub(sub(info, "PmtTpInf"), "SvcLvl"), "Prtry", "ALL")
    sub(sub(info, "ReqdExctnDt"), "Dt", execution_date.isoformat())

    debtor = sub(info, "Dbtr")
    sub(debtor, "Nm", debtor_name)
    address = sub(debtor, "PstlAdr")
    sub(address, "TwnNm", payment.debtor_town)
    sub(address, "Ctry", payment.debtor_country)
    sub(sub(sub(info, "DbtrAcct"), "Id"), "IBAN", payment.debtor_iban)
    sub(sub(sub(info, "DbtrAgt"), "FinInstnId"), "BICFI", DEBTOR_AGENT_BIC)

    transaction = sub(info, "CdtTrfTxInf")
    payment_id = sub(transaction, "PmtId")
    sub(payment_id, "InstrId", instruction_id)
    sub(payment_id, "EndToEndId", payment.reference or new_message_id("E2E"))
    sub(sub(sub(transaction, "PmtTpInf"), "SvcLvl"), "Prtry", "ALL")
    sub(sub(transaction, "Amt"), "InstdAmt", amount, Ccy=payment.currency)
    sub(transaction, "ChrgBr", "SLEV")

    if payment.creditor_bic:
        sub(sub(sub(transaction, "CdtrAgt"), "FinInstnId"), "BICFI", payment.creditor_bic)

    creditor = sub(transaction, "Cdtr")
    sub(creditor, "Nm", payment.creditor_name or DEFAULT_CREDITOR_NAME)
    address = sub(creditor, "PstlAdr")
    sub(address, "TwnNm", payment.creditor_town)
    sub(address, "Ctry", payment.creditor_country)
    sub(sub(sub(transaction, "CdtrAcct"), "Id"), "IBAN", payment.creditor_iban)

    if payment.description or payment.reference:
        remittance = sub(transaction, "RmtInf")
        if payment.description:
            sub(remittance, "Ustrd", payment.description[:MAX_REMITTANCE_LENGTH])
        if payment.reference:
            reference = sub(sub(remittance, "Strd"), "CdtrRefInf")
            sub(sub(sub(reference, "Tp"), "CdOrPrtry"), "Cd", "SCOR")
            sub(reference, "Ref", payment.reference)

    return EncodedPayment(
        xml=to_xml_string(root),
        message_id=message_id,
        payment_info_id=payment_info_id,
        instruction_id=instruction_id,
    )


def decode_payment_status(payload: Optional[str], fallback_payment_id: Optional[str] = None) -> Outcome[PaymentStatusReport]:
    """
    Status of the first transaction in a pain.002 report.

    Transaction status (`TxSts`) wins; without one, the payment-information status (`PmtInfSts`) and then the group
    status (`GrpSts`) are used. A rejection carries the bank's free-text reason, or its reason code when there is no
    text. A report with no status at all is still PENDING.
    """
    fallback = PaymentStatusReport(payment_id=fallback_payment_id)
    try:
        doc = parse_xml(payload)
    except ParseError as exc:
        logger.error("Failed to parse payment XML response", error=str(exc), response=exc.excerpt)
        return Outcome.degraded(fallback, str(exc))

    report = doc.node(".//ns:CstmrPmtStsRpt")
    if report is None:
        logger.warning("Payload is not a payment status report", response=excerpt(payload))
        return Outcome.degraded(fallback, "no payment status report in payload")

    payment_info = doc.node("./ns:OrgnlPmtInfAndSts", report)
    transaction = doc.node("./ns:TxInfAndSts", payment_info) if payment_info is not None else None

    status = ""
    reason_holder = None
    if transaction is not None:
        status = doc.text("./ns:TxSts", transaction)
        reason_holder = transaction
    if not status and payment_info is not None:
        status = doc.text("./ns:PmtInfSts", payment_info)
        reason_holder = payment_info
    if not status:
        status = doc.text("./ns:OrgnlGrpInfAndSts/ns:GrpSts", report)
        reason_holder = doc.node("./ns:OrgnlGrpInfAndSts", report)

    payment_id = fallback_payment_id
    if transaction is not None:
        payment_id = doc.text("./ns:OrgnlInstrId", transaction) or fallback_payment_id

    reason = None
    if status == PaymentState.REJECTED and reason_holder is not None:
        reason = doc.text("./ns:StsRsnInf/ns:AddtlInf", reason_holder) or doc.text("./ns:StsRsnInf/ns:Rsn/ns:Cd", reason_holder) or None

    return Outcome.ok(PaymentStatusReport(payment_id=payment_id, status=status or PaymentState.PENDING.value, reason=reason))
