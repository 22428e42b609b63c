"""brickworks.core.client

Transport capability for the factory API.

The protocol engine never owns a network client. It is handed something that
satisfies `Transport` (the HTTP implementation below, or the in-memory
simulator) and only ever calls ``send(endpoint, method, body)``.

HTTP behaviour:
- account headers (``X-Email`` / ``X-Secret-Key``) on every request
- status >= 400 raises `HttpStatusError`; unreachable raises `NetworkError`
- GET is retried on network failure (exponential backoff); POST never is,
  so an order is never paid twice because a response got lost
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from brickworks.core.config import FactoryConfig
from brickworks.core.exceptions import HttpStatusError, NetworkError
from brickworks.security.redaction import register_secret

logger = logging.getLogger(__name__)

_IDEMPOTENT = frozenset({"GET", "HEAD", "OPTIONS"})


@runtime_checkable
class Transport(Protocol):
    def send(self, endpoint: str, method: str, body: str | None = None) -> str: ...


@dataclass(frozen=True, slots=True)
class ClientConfig:
    base_url: str
    email: str
    secret_key: str
    timeout_s: float = 20.0
    max_retries: int = 3

    @classmethod
    def from_factory(cls, cfg: FactoryConfig) -> ClientConfig:
        return cls(
            base_url=cfg.url,
            email=cfg.email,
            secret_key=cfg.secret_key,
            timeout_s=cfg.timeout_s,
            max_retries=cfg.max_retries,
        )


class HttpTransport:
    """`Transport` over a synchronous ``httpx.Client``."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self._sleep = sleep
        register_secret(config.secret_key)
        headers = {"X-Email": config.email, "X-Secret-Key": config.secret_key}
        if client is None:
            self._client = httpx.Client(
                base_url=config.base_url.rstrip("/"),
                headers=headers,
                timeout=config.timeout_s,
            )
        else:
            client.headers.update(headers)
            self._client = client

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def send(self, endpoint: str, method: str, body: str | None = None) -> str:
        method = method.upper()
        attempts = self.config.max_retries + 1 if method in _IDEMPOTENT else 1

        last_exc: NetworkError | None = None
        for attempt in range(attempts):
            try:
                resp = self._request(endpoint, method, body)
            except NetworkError as e:
                last_exc = e
                if attempt + 1 >= attempts:
                    break
                delay = min(2**attempt, 8)
                logger.warning(
                    "factory_request_retry",
                    extra={"endpoint": endpoint, "attempt": attempt + 1, "delay_s": delay},
                )
                self._sleep(delay)
                continue

            if resp.status_code >= 400:
                raise HttpStatusError(resp.status_code, resp.text, endpoint=endpoint)
            return resp.text

        assert last_exc is not None
        raise last_exc

    def _request(self, endpoint: str, method: str, body: str | None) -> httpx.Response:
        headers = {"Content-Type": "application/json"} if body is not None else None
        try:
            return self._client.request(method, endpoint, content=body, headers=headers)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise NetworkError(f"{method} {endpoint}: {type(e).__name__}: {e}") from e
