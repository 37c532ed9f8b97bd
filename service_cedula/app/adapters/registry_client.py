"""
JCE registry client for the Cédula Service.
"""

import asyncio
import time
from typing import Optional, Tuple

import httpx

from shared.logging import get_logger
from shared.errors import (
    SubjectNotFoundError,
    UpstreamBadResponseError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.metrics import MetricsCollector
from shared.retry import retry_async, RetryConfig, RetryError
from ..domain.models import RegistryRecord
from .payload import parse_registry_payload


class RetryableStatusError(Exception):
    """Upstream answered with a status worth retrying (5xx or 429)."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Registry returned HTTP {status_code}")


RETRYABLE_EXCEPTIONS = (httpx.TransportError, RetryableStatusError)


class RegistryClient:
    """Client for the JCE individual data portal."""

    def __init__(self,
                 base_url: str,
                 endpoint: str = "/idcons/IndividualDataHandler.aspx",
                 service_id: str = "",
                 user_agent: str = "Cedula-Consulta-Service/1.0.0",
                 connect_timeout: float = 5.0,
                 read_timeout: float = 15.0,
                 overall_timeout: float = 25.0,
                 retry_config: Optional[RetryConfig] = None,
                 circuit_breaker: Optional[CircuitBreaker] = None,
                 metrics: Optional[MetricsCollector] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.endpoint = endpoint
        self.service_id = service_id
        self.overall_timeout = overall_timeout
        self.retry_config = retry_config or RetryConfig(max_attempts=3, base_delay=1.0, max_delay=10.0)
        self.circuit_breaker = circuit_breaker
        self.metrics = metrics
        self.logger = get_logger("cedula.registry_client")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
            headers={"User-Agent": user_agent, "Accept": "application/xml"},
            follow_redirects=False,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config, metrics: Optional[MetricsCollector] = None,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> "RegistryClient":
        breaker = None
        if config.circuit_breaker_enabled:
            breaker = CircuitBreaker(
                failure_threshold=config.circuit_breaker_failure_threshold,
                recovery_timeout=config.circuit_breaker_recovery_timeout,
                expected_exception=(RetryError, asyncio.TimeoutError),
                name="jce_registry",
            )
        return cls(
            base_url=config.registry_base_url,
            endpoint=config.registry_endpoint,
            service_id=config.registry_service_id,
            user_agent=config.registry_user_agent,
            connect_timeout=config.registry_connect_timeout,
            read_timeout=config.registry_read_timeout,
            overall_timeout=config.registry_overall_timeout,
            retry_config=RetryConfig(
                max_attempts=config.retry_max_attempts,
                base_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
                exponential_base=config.retry_multiplier,
                jitter=config.retry_jitter,
            ),
            circuit_breaker=breaker,
            metrics=metrics,
            transport=transport,
        )

    async def _attempt(self, params: dict) -> Tuple[bytes, Optional[str]]:
        """One upstream GET returning body and declared charset. Raises on anything but 2xx."""
        try:
            response = await self._client.get(self.endpoint, params=params)
        except httpx.TransportError:
            self._count_attempt("transport_error")
            raise

        status = response.status_code
        if status >= 500 or status == 429:
            self._count_attempt("retryable_status")
            raise RetryableStatusError(status)
        if status >= 400:
            self._count_attempt("rejected")
            raise UpstreamBadResponseError(
                f"El portal JCE rechazó la consulta (HTTP {status})",
                details={"status_code": status}
            )
        if status >= 300:
            self._count_attempt("rejected")
            raise UpstreamBadResponseError(
                "Respuesta inesperada del portal JCE",
                details={"status_code": status}
            )

        self._count_attempt("ok")
        return response.content, response.charset_encoding

    async def _attempt_with_retries(self, params: dict) -> Tuple[bytes, Optional[str]]:
        return await asyncio.wait_for(
            retry_async(
                self._attempt,
                params,
                exceptions=RETRYABLE_EXCEPTIONS,
                config=self.retry_config,
                name="jce_registry"
            ),
            timeout=self.overall_timeout
        )

    def _count_attempt(self, outcome: str):
        if self.metrics:
            self.metrics.increment_counter("upstream_attempts_total", outcome=outcome)

    async def fetch(self, region: str, sequence: str, check: str) -> RegistryRecord:
        """Query the registry for one cédula.

        Returns a RegistryRecord only for a successful consultation; every
        other outcome raises one of the upstream error types.
        """
        params = {"ServiceID": self.service_id, "ID1": region, "ID2": sequence, "ID3": check}
        display_id = f"{region}-{sequence}-{check}"
        started = time.perf_counter()

        try:
            if self.circuit_breaker is not None:
                content, encoding = await self.circuit_breaker.call(self._attempt_with_retries, params)
            else:
                content, encoding = await self._attempt_with_retries(params)
        except CircuitBreakerOpenException as e:
            self.logger.warning("Registry circuit open, failing fast", national_id=display_id)
            raise UpstreamUnavailableError(
                "Portal JCE temporalmente no disponible",
                details={"circuit_breaker": "open"}
            ) from e
        except asyncio.TimeoutError as e:
            self.logger.error("Registry deadline exceeded", national_id=display_id, timeout=self.overall_timeout)
            raise UpstreamTimeoutError() from e
        except RetryError as e:
            cause = e.last_exception
            self.logger.error(
                "Registry unavailable after retries",
                national_id=display_id,
                attempts=e.attempts,
                error=str(cause) or type(cause).__name__
            )
            if isinstance(cause, httpx.TimeoutException):
                raise UpstreamTimeoutError() from e
            raise UpstreamUnavailableError() from e
        finally:
            if self.metrics:
                self.metrics.observe_histogram("upstream_duration_seconds", time.perf_counter() - started)
                if self.circuit_breaker is not None:
                    self.metrics.set_gauge("circuit_breaker_open", 1 if self.circuit_breaker.is_open() else 0)

        record = parse_registry_payload(content, encoding)

        if not record.is_successful_consultation:
            self.logger.info(
                "Registry reported no citizen",
                national_id=display_id,
                upstream_success=record.success,
                upstream_message=record.message
            )
            raise SubjectNotFoundError()

        self.logger.info("Registry consultation succeeded", national_id=display_id)
        return record

    async def check_connectivity(self) -> bool:
        """Side-channel reachability probe of the portal root."""
        try:
            response = await self._client.get("/", timeout=10.0)
        except httpx.HTTPError as e:
            self.logger.warning("Registry connectivity check failed", error=str(e))
            return False
        return 200 <= response.status_code < 400

    def breaker_state(self) -> Optional[dict]:
        if self.circuit_breaker is None:
            return None
        return self.circuit_breaker.get_state()

    async def close(self):
        await self._client.aclose()
