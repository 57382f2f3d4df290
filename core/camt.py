"""
Account reporting: camt.060 requests out, camt.052 balance reports and camt.053 statements in.

Decoders never raise. Malformed or empty payloads are logged with an excerpt and come back as a degraded `Outcome`
carrying the zero value (zero balance, empty entry list).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, Dict, List, Optional, Tuple

from lxml import etree

from core.models import DEFAULT_CURRENCY, Counterparty, NormalizedBalance, TransactionEntry
from core.results import Outcome
from core.xml_tree import XmlDocument, new_document, new_message_id, parse_xml, sub, to_xml_string
from exceptions import ParseError
from logger import logger

ACCOUNT_REPORT_REQUEST_NS = "urn:iso:std:iso:20022:tech:xsd:camt.060.001.03"
DEFAULT_PERIOD_DAYS = 30

DEBIT = "DBIT"
CREDIT = "CRDT"

# Balance type codes
BOOKED_BALANCE = "ITBD"
AVAILABLE_BALANCE = "ITAV"
OPENING_BALANCE = "OPBD"

TRANSACTION_TYPE_NAMES: Dict[str, str] = {
    "PMNT.ICDT.OTHR": "Internal Transfer",
    "PMNT.RCDT.OTHR": "Received Transfer",
    "PMNT.IRCT.STDO": "Standing Order",
    "PMNT.CCRD.POSD": "Card Payment",
}
UNKNOWN_TRANSACTION_TYPE = "Unknown"


class ReportKind(StrEnum):
    BALANCE = "balance"
    STATEMENT = "statement"


# Requested message name and proprietary balance type per report kind
_REPORT_SETTINGS: Dict[ReportKind, Tuple[str, str]] = {
    ReportKind.BALANCE: ("camt.052.001.06", "PAYMENT_LIMITS"),
    ReportKind.STATEMENT: ("camt.053.001.02", "DATE"),
}


# region Amount helpers
def parse_amount(value: Optional[str]) -> Decimal:
    text = (value or "").strip()
    if not text:
        return Decimal("0")
    try:
        return Decimal(text)
    except InvalidOperation:
        logger.warning("Unparseable amount; using zero", raw_value=value)
        return Decimal("0")


def signed_amount(magnitude: Decimal, indicator: Optional[str]) -> Decimal:
    """Debit entries reduce the balance; everything else is taken as a credit."""
    magnitude = abs(magnitude)
    return -magnitude if (indicator or "").strip().upper() == DEBIT else magnitude
# endregion


# region Request encoding
def _as_date(value: Any, fallback: date) -> date:
    if value is None or value == "":
        return fallback
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def default_period(today: date) -> Tuple[date, date]:
    return today - timedelta(days=DEFAULT_PERIOD_DAYS), today


def build_account_report_request(
    iban: str,
    kind: ReportKind,
    start_date: Any = None,
    end_date: Any = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Build a camt.060 account reporting request.

    Args:
        iban: Account to report on.
        kind: Balance (camt.052, PAYMENT_LIMITS) or statement (camt.053, DATE).
        start_date: Period start (`date` or ISO string); defaults to 30 days before today.
        end_date: Period end; defaults to today.
        now: Clock override for the message timestamp.

    Returns:
        Serialized XML document.
    """
    now = now or datetime.now()
    message_name, balance_type = _REPORT_SETTINGS[ReportKind(kind)]
    default_start, default_end = default_period(now.date())

    root = new_document(ACCOUNT_REPORT_REQUEST_NS)
    request = sub(root, "AcctRptgReq")

    header = sub(request, "GrpHdr")
    sub(header, "MsgId", new_message_id("LHV"))
    sub(header, "CreDtTm", now.strftime("%Y-%m-%dT%H:%M:%S"))

    reporting = sub(request, "RptgReq")
    sub(reporting, "ReqdMsgNmId", message_name)
    sub(sub(sub(reporting, "Acct"), "Id"), "IBAN", iban)
    # Account owner must precede the reporting period even when empty
    sub(sub(reporting, "AcctOwnr"), "Pty")

    period = sub(reporting, "RptgPrd")
    dates = sub(period, "FrToDt")
    sub(dates, "FrDt", _as_date(start_date, default_start).isoformat())
    sub(dates, "ToDt", _as_date(end_date, default_end).isoformat())
    times = sub(period, "FrToTm")
    sub(times, "FrTm", "00:00:00")
    sub(times, "ToTm", "23:59:59")
    sub(period, "Tp", "ALLL")

    sub(sub(sub(reporting, "ReqdBalTp"), "CdOrPrtry"), "Prtry", balance_type)

    return to_xml_string(root)
# endregion


# region Balance report
def decode_balance_report(payload: Optional[str]) -> Outcome[NormalizedBalance]:
    """Closing booked (ITBD) and available (ITAV) balances from a camt.052 report."""
    try:
        doc = parse_xml(payload)
    except ParseError as exc:
        logger.error("Failed to parse balance report", error=str(exc), response=exc.excerpt)
        return Outcome.degraded(NormalizedBalance.zero(), str(exc))

    reports = doc.nodes(".//ns:BkToCstmrAcctRpt/ns:Rpt")
    if not reports:
        logger.warning("Balance payload contains no account reports", root=etree.QName(doc.root).localname)
        return Outcome.degraded(NormalizedBalance.zero(), "no account report in payload")

    balances: Dict[str, Tuple[Decimal, str]] = {}
    for report in reports:
        currency = doc.text("./ns:Acct/ns:Ccy", report)
        for balance in doc.nodes("./ns:Bal", report):
            code = doc.text("./ns:Tp/ns:CdOrPrtry/ns:Cd", balance)
            if code not in (BOOKED_BALANCE, AVAILABLE_BALANCE):
                continue
            amount = signed_amount(parse_amount(doc.text("./ns:Amt", balance)), doc.text("./ns:CdtDbtInd", balance))
            balances[code] = (amount, currency or doc.attr("./ns:Amt", "Ccy", balance))

    booked, booked_currency = balances.get(BOOKED_BALANCE, (Decimal("0"), ""))
    available, available_currency = balances.get(AVAILABLE_BALANCE, (Decimal("0"), ""))
    return Outcome.ok(
        NormalizedBalance(
            booked_amount=booked,
            available_amount=available,
            currency=booked_currency or available_currency or DEFAULT_CURRENCY,
        )
    )
# endregion


# region Statement
def classify_transaction(domain: str, family: str, sub_family: str) -> str:
    code = f"{domain}.{family}.{sub_family}"
    return TRANSACTION_TYPE_NAMES.get(code, code)


def _transaction_type(doc: XmlDocument, entry: etree._Element) -> str:
    domain = doc.node("./ns:BkTxCd/ns:Domn", entry)
    if domain is None:
        return UNKNOWN_TRANSACTION_TYPE
    return classify_transaction(
        doc.text("./ns:Cd", domain),
        doc.text("./ns:Fmly/ns:Cd", domain),
        doc.text("./ns:Fmly/ns:SubFmlyCd", domain),
    )


def _description(doc: XmlDocument, entry: etree._Element, details: Optional[etree._Element]) -> str:
    parts: List[str] = []
    if details is not None:
        parts.extend(doc.texts("./ns:RmtInf/ns:Ustrd", details))
    additional = doc.text("./ns:AddtlNtryInf", entry)
    if additional:
        parts.append(additional)
    return " ".join(p for p in parts if p)


def _party_name(doc: XmlDocument, party: etree._Element) -> str:
    # camt.053.001.02 puts Nm directly under the party; later versions nest it under Pty
    return doc.text("./ns:Nm", party) or doc.text("./ns:Pty/ns:Nm", party)


def _counterparty(doc: XmlDocument, details: Optional[etree._Element], indicator: str) -> Optional[Counterparty]:
    """The other side of the entry: who we paid on a debit, who paid us on a credit."""
    if details is None:
        return None
    if indicator == DEBIT:
        role, account = "Cdtr", "CdtrAcct"
    elif indicator == CREDIT:
        role, account = "Dbtr", "DbtrAcct"
    else:
        return None

    party = doc.node(f"./ns:RltdPties/ns:{role}", details)
    if party is None:
        return None
    return Counterparty(
        name=_party_name(doc, party),
        account=doc.text(f"./ns:RltdPties/ns:{account}/ns:Id/ns:IBAN", details),
    )


def _entry_date(doc: XmlDocument, entry: etree._Element, tag: str) -> str:
    return doc.text(f"./ns:{tag}/ns:Dt", entry) or doc.text(f"./ns:{tag}/ns:DtTm", entry)


def _opening_balance(doc: XmlDocument, statement: etree._Element) -> Optional[Decimal]:
    for balance in doc.nodes("./ns:Bal", statement):
        if doc.text("./ns:Tp/ns:CdOrPrtry/ns:Cd", balance) == OPENING_BALANCE:
            return signed_amount(parse_amount(doc.text("./ns:Amt", balance)), doc.text("./ns:CdtDbtInd", balance))
    return None


def decode_statement(payload: Optional[str]) -> Outcome[List[TransactionEntry]]:
    """
    Entries from a camt.053 statement, most recent first.

    The running balance is seeded from the statement's opening balance (OPBD) and updated entry by entry in source
    order (oldest first); the finished list is then reversed.
    """
    try:
        doc = parse_xml(payload)
    except ParseError as exc:
        logger.error("Failed to parse transactions XML response", error=str(exc), response=exc.excerpt)
        return Outcome.degraded([], str(exc))

    statements = doc.nodes(".//ns:Stmt")
    if not statements:
        logger.warning("Statement payload contains no statements", root=etree.QName(doc.root).localname)
        return Outcome.degraded([], "no statement in payload")

    entries: List[TransactionEntry] = []
    running_balance = Decimal("0")

    for statement in statements:
        opening = _opening_balance(doc, statement)
        if opening is not None:
            running_balance = opening
        account_currency = doc.text("./ns:Acct/ns:Ccy", statement)

        for entry in doc.nodes("./ns:Ntry", statement):
            indicator = doc.text("./ns:CdtDbtInd", entry).upper()
            amount = signed_amount(parse_amount(doc.text("./ns:Amt", entry)), indicator)
            running_balance += amount

            details = doc.node("./ns:NtryDtls/ns:TxDtls", entry)
            booking_date = _entry_date(doc, entry, "BookgDt")
            entries.append(
                TransactionEntry(
                    booking_date=booking_date,
                    value_date=_entry_date(doc, entry, "ValDt") or booking_date,
                    amount=amount,
                    currency=doc.attr("./ns:Amt", "Ccy", entry) or account_currency or DEFAULT_CURRENCY,
                    type=_transaction_type(doc, entry),
                    status=doc.text("./ns:Sts/ns:Cd", entry) or doc.text("./ns:Sts", entry),
                    reference=doc.text("./ns:AcctSvcrRef", entry),
                    description=_description(doc, entry, details),
                    running_balance=running_balance,
                    counterparty=_counterparty(doc, details, indicator),
                )
            )

    entries.reverse()
    return Outcome.ok(entries)
# endregion
