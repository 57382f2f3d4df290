#!/usr/bin/env python3
"""Command line entry point: query balances and statements, send and confirm transfers, probe connectivity."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Callable, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from config import load_connect_config
from core.operations import ConnectClient

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="LHV Connect client. Connection settings come from LHV_* environment variables or a .env file.")
    commands = parser.add_subparsers(dest="command", required=True)

    balance = commands.add_parser("balance", help="Booked and available balance of an account.")
    balance.add_argument("iban")

    transactions = commands.add_parser("transactions", help="Statement entries, most recent first.")
    transactions.add_argument("iban")
    transactions.add_argument("--start", help="Period start, YYYY-MM-DD. Defaults to 30 days ago.")
    transactions.add_argument("--end", help="Period end, YYYY-MM-DD. Defaults to today.")

    transfer = commands.add_parser("transfer", help="Initiate and confirm a credit transfer.")
    transfer.add_argument("--from", dest="debtor_iban", required=True, help="Debtor IBAN.")
    transfer.add_argument("--to", dest="creditor_iban", required=True, help="Creditor IBAN.")
    transfer.add_argument("--amount", required=True)
    transfer.add_argument("--currency", default="EUR")
    transfer.add_argument("--creditor-name")
    transfer.add_argument("--creditor-bic")
    transfer.add_argument("--reference", help="Structured creditor reference (SCOR).")
    transfer.add_argument("--description", help="Unstructured remittance text, up to 140 characters.")
    transfer.add_argument("--no-confirm", action="store_true", help="Only initiate; do not wait for a follow-up status.")

    confirm = commands.add_parser("confirm", help="Check for a status update on a submitted payment.")
    confirm.add_argument("payment_id")
    confirm.add_argument("--request-id", help="Message-Request-Id returned when the payment was initiated.")

    commands.add_parser("ping", help="Check connectivity using the mailbox message count.")
    return parser.parse_args(argv)


def _payment_from_args(args: argparse.Namespace) -> dict[str, Any]:
    payment = {
        "debtorIBAN": args.debtor_iban,
        "creditorIBAN": args.creditor_iban,
        "amount": args.amount,
        "currency": args.currency,
        "creditorName": args.creditor_name,
        "creditorBIC": args.creditor_bic,
        "reference": args.reference,
        "description": args.description,
    }
    return {k: v for k, v in payment.items() if v is not None}


def run(args: argparse.Namespace, client: ConnectClient) -> tuple[Any, bool]:
    """Execute one command. Returns the JSON-ready result and whether it counts as a success."""
    if args.command == "balance":
        return client.get_balance(args.iban).to_dict(), True

    if args.command == "transactions":
        entries = client.get_transactions(args.iban, args.start, args.end)
        return [entry.to_dict() for entry in entries], True

    if args.command == "transfer":
        payment = _payment_from_args(args)
        status = client.initiate_transfer(payment) if args.no_confirm else client.make_transfer(payment)
        return status.to_dict(), status.is_accepted or status.is_pending

    if args.command == "confirm":
        status = client.confirm_transfer(args.payment_id, correlation_id=args.request_id)
        return status.to_dict(), status.is_accepted or status.is_pending

    report = client.check_connectivity()
    return report.to_dict(), report.success


def main(argv: Optional[List[str]] = None, client_factory: Callable[..., ConnectClient] = ConnectClient.from_config) -> int:
    args = parse_args(argv)

    try:
        config = load_connect_config()
    except PydanticValidationError as exc:
        for error in exc.errors():
            field = ".".join(str(p) for p in error.get("loc", ()))
            print(f"Configuration error: {field}: {error.get('msg', '')}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    client = client_factory(config)
    try:
        result, success = run(args, client)
    finally:
        client.close()

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return EXIT_OK if success else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
