"""HTTPS transport for LHV Connect: mutual TLS, client identity headers, bounded retry and response classification."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Mapping, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from config import ConnectConfig
from core.polling import RetryPolicy, Sleeper
from exceptions import TransportError
from logger import logger

CONNECT_TIMEOUT_SECONDS = 30
READ_TIMEOUT_SECONDS = 60
MESSAGES_PATH_PREFIX = "/messages/"
# Request bodies shorter than this are logged in full at debug level
_MAX_LOGGED_BODY = 2000


class ContentKind(StrEnum):
    JSON = "json"
    XML = "xml"


_MEDIA_TYPES = {
    ContentKind.JSON: "application/json",
    ContentKind.XML: "application/xml",
}


@dataclass(frozen=True)
class HttpResult:
    """Status, headers and body of one completed call. Header lookup is case-insensitive."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", CaseInsensitiveDict(self.headers or {}))

    def header(self, name: str) -> Optional[str]:
        value = self.headers.get(name)
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class SourceAddressAdapter(HTTPAdapter):
    """Binds outgoing connections to one local IP, for hosts where LHV whitelists a specific interface."""

    def __init__(self, source_ip: str, **kwargs: Any) -> None:
        # init_poolmanager runs inside HTTPAdapter.__init__, so this must be set first
        self._source_address = (source_ip, 0)
        super().__init__(**kwargs)

    def init_poolmanager(self, connections: int, maxsize: int, block: bool = False, **pool_kwargs: Any) -> None:
        pool_kwargs["source_address"] = self._source_address
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)


def build_session(config: ConnectConfig) -> requests.Session:
    session = requests.Session()
    if config.cert_path and config.key_path:
        session.cert = (config.cert_path, config.key_path)
    elif config.cert_path:
        session.cert = config.cert_path
    session.verify = config.root_ca_path or True
    if config.interface_ip:
        adapter = SourceAddressAdapter(config.interface_ip)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
    return session


class ConnectTransport:
    """Sends commands to LHV Connect and returns an `HttpResult` per call."""

    def __init__(
        self,
        config: ConnectConfig,
        session: Optional[requests.Session] = None,
        retry: Optional[RetryPolicy] = None,
        sleep: Sleeper = time.sleep,
        timeout: Tuple[float, float] = (CONNECT_TIMEOUT_SECONDS, READ_TIMEOUT_SECONDS),
    ) -> None:
        self._config = config
        self._session = session or build_session(config)
        self._retry = retry or RetryPolicy()
        self._sleep = sleep
        self._timeout = timeout

    @property
    def interface_ip(self) -> Optional[str]:
        return self._config.interface_ip

    def close(self) -> None:
        self._session.close()

    def _headers_for(self, content_kind: ContentKind) -> dict[str, str]:
        media_type = _MEDIA_TYPES[ContentKind(content_kind)]
        return {
            "Client-Code": self._config.client_code,
            "Client-Country": self._config.client_country,
            "Content-Type": media_type,
            "Accept": media_type,
        }

    def send(self, method: str, path: str, body: Optional[str] = None, content_kind: ContentKind = ContentKind.JSON) -> HttpResult:
        """
        Issue one command, retrying connection failures and 5xx responses.

        Args:
            method: HTTP verb.
            path: Endpoint path beginning with "/", e.g. "/messages/count".
            body: Optional request body (XML or JSON text).
            content_kind: Selects the Content-Type/Accept pair.

        Returns:
            HttpResult for the final attempt.

        Raises:
            TransportError: Retries exhausted, non-retryable failure, unexpected empty body or status >= 400.
        """
        method = method.upper()
        url = f"{self._config.base_url}{path}"
        headers = self._headers_for(content_kind)
        data = body.encode("utf-8") if body is not None else None

        logger.debug("Sending request", method=method, url=url, content_kind=str(content_kind), data_length=len(body) if body else 0)
        if body and len(body) < _MAX_LOGGED_BODY:
            logger.debug("Request data", data=body)

        attempt = 0
        while True:
            try:
                response = self._session.request(method, url, data=data, headers=headers, timeout=self._timeout)
            except requests.exceptions.SSLError as exc:
                logger.error("TLS error", endpoint=path, error=str(exc))
                raise TransportError(f"TLS error for {method} {path}: {exc}") from exc
            except (requests.ConnectionError, requests.Timeout) as exc:
                logger.error("Connection error", endpoint=path, error=str(exc), retry_count=attempt)
                if attempt < self._retry.max_retries:
                    attempt += 1
                    self._sleep(self._retry.delay_for(attempt))
                    continue
                raise TransportError(f"Connection failed for {method} {path}: {exc}") from exc
            except requests.RequestException as exc:
                logger.error("Request failed", endpoint=path, error=str(exc))
                raise TransportError(f"Request failed for {method} {path}: {exc}") from exc

            if response.encoding is None:
                response.encoding = "utf-8"

            logger.debug(
                "API response details",
                endpoint=path,
                http_code=response.status_code,
                response_size=len(response.content or b""),
                headers=dict(response.headers),
            )

            if response.status_code >= 500 and attempt < self._retry.max_retries:
                logger.warning("Server error, retrying", endpoint=path, http_code=response.status_code, retry_count=attempt)
                attempt += 1
                self._sleep(self._retry.delay_for(attempt))
                continue
            break

        return self._classify(method, path, response)

    def _classify(self, method: str, path: str, response: requests.Response) -> HttpResult:
        status = response.status_code
        text = response.text or ""

        if status == 404 and method == "DELETE" and path.startswith(MESSAGES_PATH_PREFIX):
            logger.info("Message already deleted", endpoint=path)
            return HttpResult(status_code=status, headers=response.headers, body="")

        if not text:
            if status in (202, 204) or (status == 200 and method == "DELETE"):
                return HttpResult(status_code=status, headers=response.headers, body="")
            logger.warning("Empty response received", endpoint=path, http_code=status)
            raise TransportError("Empty response received from API", status_code=status)

        if status >= 400:
            logger.error("HTTP error response", endpoint=path, http_code=status, response_body=text[:1000])
            raise TransportError(f"HTTP error {status}: {text}", status_code=status, body=text)

        return HttpResult(status_code=status, headers=response.headers, body=text)
