"""
Test doubles shared across the suite.

Nothing here touches the network. `FakeSession` stands in for `requests.Session` under the real transport;
`FakeBank` stands in for the whole transport and simulates the LHV Connect mailbox, so poller and operation tests can
script which messages show up and when. `FakeClock` drives both the poller's clock and its sleeps, so timeouts are
reached in simulated time.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from urllib.parse import unquote

from requests.structures import CaseInsensitiveDict

from core.transport import HttpResult
from exceptions import TransportError

BASE_URL = "https://connect.test"


class FakeClock:
    """Monotonic clock whose `sleep` advances time instead of blocking."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeResponse:
    """Minimal `requests.Response` double."""

    def __init__(self, status_code: int = 200, text: str = "", headers: Optional[Dict[str, str]] = None, encoding: Optional[str] = "utf-8") -> None:
        self.status_code = status_code
        self.text = text
        self.content = text.encode("utf-8")
        self.headers = CaseInsensitiveDict(headers or {})
        self.encoding = encoding


class FakeSession:
    """Replays scripted responses (or raises scripted exceptions) and records every request."""

    def __init__(self, *outcomes: Union[FakeResponse, Exception]) -> None:
        self.outcomes = list(outcomes)
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, data: Optional[bytes] = None, headers: Optional[Dict[str, str]] = None, timeout: Any = None) -> FakeResponse:
        self.calls.append({"method": method, "url": url, "data": data, "headers": dict(headers or {}), "timeout": timeout})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed = True


@dataclass
class QueuedMessage:
    id: str
    response_type: str
    payload: str
    request_id: Optional[str] = None
    arrives_at: float = 0.0

    def envelope(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"messageResponseId": self.id, "messageResponseType": self.response_type, "messageCreatedTime": "2024-05-01T10:00:00"}
        if self.request_id is not None:
            data["messageRequestId"] = self.request_id
        return data


@dataclass
class FakeBank:
    """
    In-memory LHV Connect: command endpoints answer with a request id header, mailbox endpoints serve queued messages.

    Attributes:
        clock: Time source used to decide which queued messages have arrived.
        request_ids: Request id returned per command path; a missing entry means no header.
        messages: Mailbox contents, including messages that have not arrived yet.
        calls: Every (method, path, body) sent.
        failures: Paths whose next call raises the given error.
        undeletable: Message ids whose DELETE fails.
    """

    clock: FakeClock = field(default_factory=FakeClock)
    request_ids: Dict[str, str] = field(default_factory=dict)
    messages: List[QueuedMessage] = field(default_factory=list)
    calls: List[tuple] = field(default_factory=list)
    failures: Dict[str, Exception] = field(default_factory=dict)
    undeletable: set = field(default_factory=set)
    interface_ip: Optional[str] = None
    closed: bool = False

    def queue(self, message_id: str, response_type: str, payload: str, request_id: Optional[str] = None, delay: float = 0.0) -> None:
        self.messages.append(QueuedMessage(message_id, response_type, payload, request_id, arrives_at=self.clock() + delay))

    def _arrived(self) -> List[QueuedMessage]:
        return [m for m in self.messages if m.arrives_at <= self.clock()]

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [path for m, path, _ in self.calls if method is None or m == method]

    def close(self) -> None:
        self.closed = True

    def send(self, method: str, path: str, body: Optional[str] = None, content_kind: Any = None) -> HttpResult:
        self.calls.append((method, path, body))
        bare_path = path.split("?", 1)[0]
        if bare_path in self.failures:
            raise self.failures.pop(bare_path)

        if method == "GET" and bare_path == "/messages/count":
            return HttpResult(200, {}, json.dumps({"count": len(self._arrived())}))
        if method == "GET" and bare_path == "/messages":
            return HttpResult(200, {}, json.dumps({"messages": [m.envelope() for m in self._arrived()]}))

        if bare_path.startswith("/messages/"):
            message_id = unquote(bare_path[len("/messages/"):])
            found = next((m for m in self._arrived() if m.id == message_id), None)
            if method == "GET":
                if found is None:
                    raise TransportError("HTTP error 404: not found", status_code=404, body="not found")
                return HttpResult(200, {}, found.payload)
            if method == "DELETE":
                if message_id in self.undeletable:
                    raise TransportError("HTTP error 500: delete failed", status_code=500, body="delete failed")
                if found is None:
                    return HttpResult(404, {}, "")
                self.messages.remove(found)
                return HttpResult(200, {}, "")

        headers = {"Message-Request-Id": self.request_ids[bare_path]} if bare_path in self.request_ids else {}
        return HttpResult(202, headers, "")
