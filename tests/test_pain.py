"""Unit tests for pain.001 payment initiation and pain.002 status decoding."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from core.models import PaymentRequest
from core.pain import EncodedPayment, build_payment_initiation, decode_payment_status, format_amount
from core.xml_tree import parse_xml
from payloads import status_report


def _payment(**overrides) -> PaymentRequest:
    data = {"debtorIBAN": "EE38 2200 2210 2014 5685", "creditorIBAN": "ee471000001020145685", "amount": "12.5"}
    data.update(overrides)
    return PaymentRequest.model_validate(data)


# region Initiation
def test_payment_initiation_document_structure() -> None:
    encoded = build_payment_initiation(_payment(), now=datetime(2024, 6, 3, 9, 30, 0))

    assert isinstance(encoded, EncodedPayment)
    doc = parse_xml(encoded.xml)
    assert doc.namespace == "urn:iso:std:iso:20022:tech:xsd:pain.001.001.09"
    assert doc.text(".//ns:GrpHdr/ns:MsgId") == encoded.message_id
    assert doc.text(".//ns:GrpHdr/ns:CreDtTm") == "2024-06-03T09:30:00"
    assert doc.text(".//ns:GrpHdr/ns:NbOfTxs") == "1"
    assert doc.text(".//ns:GrpHdr/ns:CtrlSum") == "12.50"
    assert doc.text(".//ns:GrpHdr/ns:InitgPty/ns:Nm") == "LHV Connect Client"

    assert doc.text(".//ns:PmtInf/ns:PmtInfId") == encoded.payment_info_id
    assert doc.text(".//ns:PmtInf/ns:PmtMtd") == "TRF"
    assert doc.text(".//ns:PmtInf/ns:BtchBookg") == "false"
    assert doc.text(".//ns:PmtInf/ns:PmtTpInf/ns:SvcLvl/ns:Prtry") == "ALL"
    assert doc.text(".//ns:PmtInf/ns:ReqdExctnDt/ns:Dt") == "2024-06-03"
    assert doc.text(".//ns:Dbtr/ns:PstlAdr/ns:TwnNm") == "Tallinn"
    assert doc.text(".//ns:Dbtr/ns:PstlAdr/ns:Ctry") == "EE"
    assert doc.text(".//ns:DbtrAcct/ns:Id/ns:IBAN") == "EE382200221020145685"
    assert doc.text(".//ns:DbtrAgt/ns:FinInstnId/ns:BICFI") == "LHVBEE22"

    assert doc.text(".//ns:CdtTrfTxInf/ns:PmtId/ns:InstrId") == encoded.instruction_id
    assert doc.text(".//ns:CdtTrfTxInf/ns:PmtId/ns:EndToEndId").startswith("E2E")
    assert doc.text(".//ns:CdtTrfTxInf/ns:Amt/ns:InstdAmt") == "12.50"
    assert doc.attr(".//ns:CdtTrfTxInf/ns:Amt/ns:InstdAmt", "Ccy") == "EUR"
    assert doc.text(".//ns:CdtTrfTxInf/ns:ChrgBr") == "SLEV"
    assert doc.text(".//ns:Cdtr/ns:Nm") == "Payment Recipient"
    assert doc.text(".//ns:CdtrAcct/ns:Id/ns:IBAN") == "EE471000001020145685"
    assert not doc.exists(".//ns:CdtrAgt")
    assert not doc.exists(".//ns:RmtInf")


def test_payment_initiation_optional_blocks() -> None:
    payment = _payment(
        debtorName="Acme OÜ",
        creditorName="Supplier AS",
        creditorBIC="HABAEE2X",
        reference="RF18539007547034",
        description="x" * 200,
        currency="usd",
        requestedExecutionDate="2024-07-01",
    )

    doc = parse_xml(build_payment_initiation(payment).xml)

    assert doc.text(".//ns:InitgPty/ns:Nm") == "Acme OÜ"
    assert doc.text(".//ns:Dbtr/ns:Nm") == "Acme OÜ"
    assert doc.text(".//ns:Cdtr/ns:Nm") == "Supplier AS"
    assert doc.text(".//ns:CdtrAgt/ns:FinInstnId/ns:BICFI") == "HABAEE2X"
    assert doc.text(".//ns:PmtId/ns:EndToEndId") == "RF18539007547034"
    assert doc.attr(".//ns:InstdAmt", "Ccy") == "USD"
    assert doc.text(".//ns:ReqdExctnDt/ns:Dt") == "2024-07-01"
    assert doc.text(".//ns:RmtInf/ns:Ustrd") == "x" * 140
    assert doc.text(".//ns:RmtInf/ns:Strd/ns:CdtrRefInf/ns:Tp/ns:CdOrPrtry/ns:Cd") == "SCOR"
    assert doc.text(".//ns:RmtInf/ns:Strd/ns:CdtrRefInf/ns:Ref") == "RF18539007547034"


def test_generated_identifiers_are_distinct_per_payment() -> None:
    first = build_payment_initiation(_payment())
    second = build_payment_initiation(_payment())

    assert first.instruction_id != second.instruction_id
    assert len({first.message_id, first.payment_info_id, first.instruction_id}) == 3
    assert all(len(i) <= 35 for i in (first.message_id, first.payment_info_id, first.instruction_id))


@pytest.mark.parametrize("amount, expected", [(Decimal("1"), "1.00"), (Decimal("0.005"), "0.01"), (Decimal("1234.5"), "1234.50")])
def test_format_amount(amount: Decimal, expected: str) -> None:
    assert format_amount(amount) == expected


def test_payment_request_normalises_input() -> None:
    payment = _payment(reference="  ", requestedExecutionDate=date(2024, 1, 2))

    assert payment.debtor_iban == "EE382200221020145685"
    assert payment.creditor_iban == "EE471000001020145685"
    assert payment.amount == Decimal("12.5")
    assert payment.reference is None
    assert payment.requested_execution_date == date(2024, 1, 2)
# endregion


# region Status report
def test_accepted_transaction_status() -> None:
    payload = status_report("<TxInfAndSts><OrgnlInstrId>INSTR1</OrgnlInstrId><TxSts>ACSC</TxSts></TxInfAndSts>")

    outcome = decode_payment_status(payload, "FALLBACK")

    assert outcome.is_ok
    assert outcome.value.payment_id == "INSTR1"
    assert outcome.value.status == "ACSC"
    assert outcome.value.reason is None


def test_rejected_transaction_carries_reason_text() -> None:
    payload = status_report(
        "<TxInfAndSts><TxSts>RJCT</TxSts><StsRsnInf><Rsn><Cd>AC04</Cd></Rsn><AddtlInf>Account closed</AddtlInf></StsRsnInf></TxInfAndSts>",
        namespace="",
    )

    outcome = decode_payment_status(payload, "FALLBACK")

    assert outcome.value.payment_id == "FALLBACK"
    assert outcome.value.status == "RJCT"
    assert outcome.value.reason == "Account closed"


def test_rejection_without_text_falls_back_to_reason_code() -> None:
    payload = status_report("<TxInfAndSts><TxSts>RJCT</TxSts><StsRsnInf><Rsn><Cd>AM04</Cd></Rsn></StsRsnInf></TxInfAndSts>")

    assert decode_payment_status(payload, "P1").value.reason == "AM04"


def test_payment_and_group_level_statuses_are_fallbacks() -> None:
    payment_level = status_report(payment_level="<PmtInfSts>RJCT</PmtInfSts><StsRsnInf><AddtlInf>Insufficient funds</AddtlInf></StsRsnInf>")
    group_level = status_report(group_level="<GrpSts>ACTC</GrpSts>")

    rejected = decode_payment_status(payment_level, "P1").value
    accepted = decode_payment_status(group_level, "P2").value

    assert (rejected.payment_id, rejected.status, rejected.reason) == ("P1", "RJCT", "Insufficient funds")
    assert (accepted.payment_id, accepted.status) == ("P2", "ACTC")


def test_report_without_any_status_is_pending() -> None:
    outcome = decode_payment_status(status_report(), "P1")

    assert outcome.is_ok
    assert outcome.value.status == "PENDING"


@pytest.mark.parametrize("payload", ["<Document><CstmrPmtStsRpt>", "", "<Document><Other/></Document>"])
def test_unreadable_status_report_is_degraded_with_fallback_id(payload: str) -> None:
    outcome = decode_payment_status(payload, "P1")

    assert outcome.is_degraded
    assert outcome.value.payment_id == "P1"
# endregion
