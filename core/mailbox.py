"""
Mailbox poller.

LHV Connect answers commands asynchronously: the response lands in a shared mailbox that we poll, match to our
request, fetch and then delete. There is no webhook, so polling is the only way to get results.

A wait moves through POLLING -> FETCHING -> DELETING -> DONE, or ends in TIMED_OUT when nothing matching arrives.
Timing out is not an error; callers treat it as "no update yet".
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable, List, Optional
from urllib.parse import quote

from pydantic import ValidationError as PydanticValidationError

from core.models import MailboxMessage, MessageCount, MessageList
from core.polling import DEFAULT_LIST_LIMIT, Clock, PollPolicy, Sleeper, monotonic_clock
from core.transport import ConnectTransport
from exceptions import ConnectError, ParseError, TransportError
from logger import logger


class PollState(StrEnum):
    POLLING = "POLLING"
    FETCHING = "FETCHING"
    DELETING = "DELETING"
    DONE = "DONE"
    TIMED_OUT = "TIMED_OUT"


@dataclass
class PollResult:
    state: PollState
    payload: Optional[str] = None
    message: Optional[MailboxMessage] = None
    elapsed_seconds: float = 0.0
    attempts: int = 0
    deleted: bool = False

    @property
    def found(self) -> bool:
        return self.state == PollState.DONE


def select_candidates(messages: Iterable[MailboxMessage], expected_type: Optional[str], correlation_id: Optional[str]) -> List[MailboxMessage]:
    """Messages matching the expected type and request id, in mailbox order.

    Either filter is skipped when its value is empty. A message with no request id never matches a required one.
    """
    matches: List[MailboxMessage] = []
    for message in messages:
        if expected_type and message.response_type != expected_type:
            continue
        if correlation_id and message.request_id != correlation_id:
            continue
        matches.append(message)
    return matches


def _parse_envelope(model, body: str, what: str):  # type: ignore[no-untyped-def]
    try:
        return model.model_validate_json(body or "{}")
    except PydanticValidationError as exc:
        raise ParseError(f"Invalid {what} envelope: {exc.error_count()} error(s)", excerpt=(body or "")[:1000]) from exc


class MailboxPoller:
    """Reads, matches and consumes messages from the LHV Connect mailbox."""

    def __init__(
        self,
        transport: ConnectTransport,
        policy: Optional[PollPolicy] = None,
        clock: Clock = monotonic_clock,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._transport = transport
        self._policy = policy or PollPolicy()
        self._clock = clock
        self._sleep = sleep

    @property
    def policy(self) -> PollPolicy:
        return self._policy

    # region Mailbox calls
    def message_count(self) -> int:
        result = self._transport.send("GET", "/messages/count")
        return max(_parse_envelope(MessageCount, result.body, "message count").count, 0)

    def list_messages(self, limit: int = DEFAULT_LIST_LIMIT) -> List[MailboxMessage]:
        path = f"/messages?limit={int(limit)}" if limit > 0 else "/messages"
        result = self._transport.send("GET", path)
        return _parse_envelope(MessageList, result.body, "message list").messages

    def get_message(self, message_id: str) -> str:
        return self._transport.send("GET", f"/messages/{quote(message_id, safe='')}").body

    def delete_message(self, message_id: str) -> bool:
        """Delete a consumed message. A 404 means it is already gone and still counts as deleted."""
        result = self._transport.send("DELETE", f"/messages/{quote(message_id, safe='')}")
        if 200 <= result.status_code < 300 or result.status_code == 404:
            return True
        raise TransportError(f"Unexpected response deleting message: HTTP {result.status_code}", status_code=result.status_code, body=result.body)
    # endregion

    def wait_for_message(self, expected_type: Optional[str] = None, timeout_seconds: Optional[float] = None, correlation_id: Optional[str] = None) -> Optional[str]:
        """Payload of the first matching message, or None if none arrived before the timeout."""
        return self.poll(expected_type, timeout_seconds, correlation_id).payload

    def poll(self, expected_type: Optional[str] = None, timeout_seconds: Optional[float] = None, correlation_id: Optional[str] = None) -> PollResult:
        policy = self._policy.with_timeout(timeout_seconds)
        started = self._clock()
        interval = policy.interval_seconds
        attempts = 0

        logger.info("Waiting for response message", expected_type=expected_type, request_id=correlation_id, timeout=policy.timeout_seconds)

        while self._clock() - started < policy.timeout_seconds:
            attempts += 1
            try:
                count = self.message_count()
                logger.debug("Message count check", count=count, elapsed_time=round(self._clock() - started, 3), timeout=policy.timeout_seconds)

                if count > 0:
                    messages = self.list_messages(policy.list_limit)
                    logger.debug("Messages list retrieved", message_count=len(messages), messages=[m.summary() for m in messages])

                    candidates = select_candidates(messages, expected_type, correlation_id)
                    if candidates:
                        return self._consume(candidates[0], started, attempts)

                    if messages:
                        logger.debug(
                            "No matching messages found",
                            expected_type=expected_type,
                            request_id=correlation_id,
                            available_types=[m.response_type for m in messages],
                            available_request_ids=[m.request_id for m in messages],
                        )
            except (TransportError, ParseError) as exc:
                logger.error("Error polling for messages", error=str(exc), elapsed_time=round(self._clock() - started, 3), attempt=attempts)

            remaining = policy.timeout_seconds - (self._clock() - started)
            if remaining <= 0:
                break
            self._sleep(policy.sleep_for(interval, remaining))
            interval = policy.next_interval(interval)

        elapsed = self._clock() - started
        logger.warning("Timeout waiting for response message", expected_type=expected_type, request_id=correlation_id, timeout=policy.timeout_seconds, attempts=attempts)
        return PollResult(state=PollState.TIMED_OUT, elapsed_seconds=elapsed, attempts=attempts)

    def _consume(self, message: MailboxMessage, started: float, attempts: int) -> PollResult:
        logger.info("Processing matching message", message_id=message.id, type=message.response_type, request_id=message.request_id, state=PollState.FETCHING)
        payload = self.get_message(message.id)

        deleted = False
        logger.debug("Deleting consumed message", message_id=message.id, state=PollState.DELETING)
        try:
            deleted = self.delete_message(message.id)
        except ConnectError as exc:
            # payload already fetched; an undeleted message can show up in a later listing
            logger.warning("Failed to delete message", message_id=message.id, error=str(exc))

        return PollResult(
            state=PollState.DONE,
            payload=payload,
            message=message,
            elapsed_seconds=self._clock() - started,
            attempts=attempts,
            deleted=deleted,
        )
