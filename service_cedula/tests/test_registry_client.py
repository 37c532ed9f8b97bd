"""
Unit tests for the JCE registry client.
"""

import asyncio
import pytest
import httpx

from service_cedula.app.adapters.registry_client import RegistryClient
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import (
    SubjectNotFoundError,
    UpstreamBadResponseError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError
from shared.test_helpers import RegistryStub, TestDataFactory


FAST_RETRIES = RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False)


def found_response() -> httpx.Response:
    return httpx.Response(200, text=TestDataFactory.create_registry_xml())


def make_client(stub: RegistryStub, **kwargs) -> RegistryClient:
    kwargs.setdefault("retry_config", FAST_RETRIES)
    return RegistryClient(
        base_url="https://registry.test/",
        endpoint="/idcons/IndividualDataHandler.aspx",
        service_id="svc-1",
        transport=stub.transport(),
        **kwargs
    )


class TestRegistryClientFetch:
    """Test cases for RegistryClient.fetch()."""

    @pytest.mark.asyncio
    async def test_success_builds_query(self):
        stub = RegistryStub(found_response())
        client = make_client(stub)

        record = await client.fetch("001", "1234567", "1")

        assert record.names == "JUAN CARLOS"
        assert stub.calls == 1
        request = stub.requests[0]
        assert request.url.path == "/idcons/IndividualDataHandler.aspx"
        assert dict(request.url.params) == {"ServiceID": "svc-1", "ID1": "001", "ID2": "1234567", "ID3": "1"}
        assert request.headers["Accept"] == "application/xml"
        assert "User-Agent" in request.headers

    @pytest.mark.asyncio
    async def test_two_connection_failures_then_success(self):
        stub = RegistryStub(
            httpx.ConnectError("connection refused"),
            httpx.ConnectError("connection refused"),
            found_response(),
        )
        client = make_client(stub)

        record = await client.fetch("001", "1234567", "1")

        assert record.first_surname == "PEREZ"
        assert stub.calls == 3

    @pytest.mark.asyncio
    async def test_server_errors_are_retried_then_unavailable(self):
        stub = RegistryStub(httpx.Response(503))
        client = make_client(stub)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.fetch("001", "1234567", "1")

        assert exc_info.value.code == "JCE_NO_DISPONIBLE"
        assert stub.calls == 3

    @pytest.mark.asyncio
    async def test_too_many_requests_is_retried(self):
        stub = RegistryStub(httpx.Response(429), found_response())
        client = make_client(stub)

        await client.fetch("001", "1234567", "1")

        assert stub.calls == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        stub = RegistryStub(httpx.Response(404))
        client = make_client(stub)

        with pytest.raises(UpstreamBadResponseError) as exc_info:
            await client.fetch("001", "1234567", "1")

        assert exc_info.value.details["status_code"] == 404
        assert stub.calls == 1

    @pytest.mark.asyncio
    async def test_read_timeouts_exhausted_map_to_timeout(self):
        stub = RegistryStub(httpx.ReadTimeout("read timed out"))
        client = make_client(stub)

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await client.fetch("001", "1234567", "1")

        assert exc_info.value.code == "JCE_TIMEOUT"
        assert stub.calls == 3

    @pytest.mark.asyncio
    async def test_overall_deadline_covers_retry_sequence(self):
        slow_retries = RetryConfig(max_attempts=5, base_delay=1.0, max_delay=1.0, jitter=False)
        stub = RegistryStub(httpx.ConnectError("connection refused"))
        client = make_client(stub, retry_config=slow_retries, overall_timeout=0.05)

        with pytest.raises(UpstreamTimeoutError):
            await client.fetch("001", "1234567", "1")

        assert stub.calls == 1

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self):
        stub = RegistryStub(httpx.Response(200, text=TestDataFactory.create_not_found_xml()))
        client = make_client(stub)

        with pytest.raises(SubjectNotFoundError) as exc_info:
            await client.fetch("001", "1234567", "1")

        assert exc_info.value.code == "CIUDADANO_NO_ENCONTRADO"
        assert stub.calls == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("success", ["TRUE", "1", "True"])
    async def test_success_flag_variants(self, success):
        stub = RegistryStub(httpx.Response(200, text=TestDataFactory.create_registry_xml(success=success)))

        record = await make_client(stub).fetch("001", "1234567", "1")

        assert record.is_successful_consultation

    @pytest.mark.asyncio
    async def test_blank_surname_is_not_found(self):
        stub = RegistryStub(httpx.Response(200, text=TestDataFactory.create_registry_xml(apellido1="  ")))

        with pytest.raises(SubjectNotFoundError):
            await make_client(stub).fetch("001", "1234567", "1")

    @pytest.mark.asyncio
    async def test_garbage_payload_is_bad_response(self):
        stub = RegistryStub(httpx.Response(200, text="<html><body>Error</html>"))

        with pytest.raises(UpstreamBadResponseError):
            await make_client(stub).fetch("001", "1234567", "1")

        assert stub.calls == 1

    @pytest.mark.asyncio
    async def test_records_attempt_metrics(self):
        metrics = MetricsCollector("cedula-test")
        stub = RegistryStub(httpx.ConnectError("refused"), found_response())

        await make_client(stub, metrics=metrics).fetch("001", "1234567", "1")

        registry = metrics.registry
        assert registry.get_sample_value("upstream_attempts_total", {"outcome": "transport_error"}) == 1.0
        assert registry.get_sample_value("upstream_attempts_total", {"outcome": "ok"}) == 1.0

    @pytest.mark.asyncio
    async def test_latin1_body_decoded_with_header_charset(self):
        body = "<root><nombres>MUÑOZ</nombres><apellido1>PÉREZ</apellido1><success>true</success></root>"
        stub = RegistryStub(httpx.Response(
            200,
            content=body.encode("latin-1"),
            headers={"Content-Type": "text/xml; charset=iso-8859-1"},
        ))

        record = await make_client(stub).fetch("001", "1234567", "1")

        assert record.names == "MUÑOZ"
        assert record.first_surname == "PÉREZ"


class TestRegistryClientCircuitBreaker:
    """Test cases for circuit breaking around the retry sequence."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold_and_fails_fast(self):
        breaker = CircuitBreaker(
            failure_threshold=2,
            recovery_timeout=60.0,
            expected_exception=(RetryError, asyncio.TimeoutError),
            name="test_registry",
        )
        stub = RegistryStub(httpx.ConnectError("refused"))
        client = make_client(stub, circuit_breaker=breaker)

        for _ in range(2):
            with pytest.raises(UpstreamUnavailableError):
                await client.fetch("001", "1234567", "1")
        assert breaker.is_open()
        calls_before = stub.calls

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.fetch("001", "1234567", "1")

        assert exc_info.value.details == {"circuit_breaker": "open"}
        assert stub.calls == calls_before

    @pytest.mark.asyncio
    async def test_not_found_does_not_trip_breaker(self):
        breaker = CircuitBreaker(failure_threshold=1, expected_exception=(RetryError, asyncio.TimeoutError))
        stub = RegistryStub(httpx.Response(200, text=TestDataFactory.create_not_found_xml()))
        client = make_client(stub, circuit_breaker=breaker)

        with pytest.raises(SubjectNotFoundError):
            await client.fetch("001", "1234567", "1")

        assert not breaker.is_open()

    @pytest.mark.asyncio
    async def test_half_open_admits_a_single_trial_call(self):
        now = [1000.0]
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=10.0, clock=lambda: now[0])

        async def failing():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            await breaker.call(failing)
        assert breaker.is_open()

        now[0] += 11.0
        executed = []

        async def slow_success():
            executed.append(1)
            await asyncio.sleep(0.01)
            return "ok"

        results = await asyncio.gather(*(breaker.call(slow_success) for _ in range(10)), return_exceptions=True)

        assert len(executed) == 1
        assert results.count("ok") == 1
        assert sum(isinstance(r, CircuitBreakerOpenException) for r in results) == 9
        assert breaker.get_state()["state"] == "closed"

    @pytest.mark.asyncio
    async def test_failed_trial_reopens_and_blocks(self):
        now = [1000.0]
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=10.0, clock=lambda: now[0])

        async def failing():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            await breaker.call(failing)
        now[0] += 11.0
        with pytest.raises(RuntimeError):
            await breaker.call(failing)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(failing)


class TestCheckConnectivity:
    """Test cases for RegistryClient.check_connectivity()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,expected", [(200, True), (302, True), (404, False), (500, False)])
    async def test_status_classes(self, status, expected):
        stub = RegistryStub(httpx.Response(status))

        assert await make_client(stub).check_connectivity() is expected
        assert stub.requests[0].url.path == "/"

    @pytest.mark.asyncio
    async def test_transport_error_is_unreachable(self):
        stub = RegistryStub(httpx.ConnectError("refused"))

        assert await make_client(stub).check_connectivity() is False
