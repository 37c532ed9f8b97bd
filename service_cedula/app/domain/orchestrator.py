"""
Query pipeline for the Cédula Service.

Stages run strictly in order: identifier validation, view resolution,
admission, cache lookup, registry fetch (on miss), cache store (successful
consultations only) and shaping. Every outcome, including unexpected
failures, ends as a well-formed ShapedResult.
"""

import time
from typing import Callable, Optional, TYPE_CHECKING

from shared.errors import CedulaServiceError, InvalidIdentifierError, InternalError, RateLimitError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..validation.cedula import clean, format_display, validate
from .models import QueryRequest, ShapedResult, View
from .shaper import ResponseShaper

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..adapters.registry_client import RegistryClient
    from ..caching.result_cache import ResultCache
    from ..ratelimit.token_bucket import AdmissionController


class QueryOrchestrator:
    """Composes validator, limiter, cache, registry client and shaper."""

    def __init__(self,
                 admission: "AdmissionController",
                 cache: "ResultCache",
                 client: "RegistryClient",
                 shaper: ResponseShaper,
                 metrics: Optional[MetricsCollector] = None,
                 timer: Callable[[], float] = time.perf_counter):
        self.admission = admission
        self.cache = cache
        self.client = client
        self.shaper = shaper
        self.metrics = metrics
        self.logger = get_logger("cedula.orchestrator")
        self._timer = timer

    def build_request(self, raw_id: Optional[str], view: Optional[str], include_photo: bool) -> QueryRequest:
        """Validate input. Raises before any I/O happens."""
        return QueryRequest(
            national_id=validate(raw_id),
            view=View.parse(view),
            include_photo=include_photo,
        )

    async def query(self,
                    raw_id: Optional[str],
                    view: Optional[str] = None,
                    include_photo: bool = True,
                    client_key: str = "unknown") -> ShapedResult:
        """Run the full pipeline for one lookup."""
        started = self._timer()
        echoed = format_display(clean(raw_id))

        try:
            request = self.build_request(raw_id, view, include_photo)
            echoed = request.national_id.formatted

            decision = await self.admission.try_admit(client_key)
            if not decision.admitted:
                raise RateLimitError(decision.retry_after)

            national_id = request.national_id
            record = await self.cache.get(national_id.canonical)
            cached = record is not None
            if record is None:
                record = await self.client.fetch(national_id.region, national_id.sequence, national_id.check)
                await self.cache.put(national_id.canonical, record)

            person, photo = self.shaper.shape(record, request.view, request.include_photo)
            result = ShapedResult.ok(
                national_id=echoed,
                person=person,
                photo=photo,
                elapsed_ms=self._elapsed_ms(started),
                cached=cached,
                rate_limit_remaining=decision.remaining,
            )
            self.logger.info(
                "Consultation completed",
                national_id=echoed,
                view=request.view.value,
                cached=cached,
                elapsed_ms=result.elapsed_ms
            )

        except InvalidIdentifierError as e:
            self.logger.info("Rejected invalid cédula", digits=len(e.digits))
            result = self._failure(e, echoed, started)

        except CedulaServiceError as e:
            self.logger.info("Consultation failed", national_id=echoed, code=e.code, error=e.message)
            result = self._failure(e, echoed, started)

        except Exception as e:
            self.logger.error(
                "Unexpected error during consultation",
                national_id=echoed,
                error=str(e),
                exc_info=True
            )
            result = self._failure(InternalError(), echoed, started)

        if self.metrics:
            self.metrics.record_query(result.code, result.elapsed_ms / 1000.0)

        return result

    def _failure(self, error: CedulaServiceError, echoed: str, started: float) -> ShapedResult:
        return ShapedResult.failure(
            code=error.code,
            message=error.message,
            national_id=echoed or None,
            elapsed_ms=self._elapsed_ms(started),
            http_status=error.http_status,
            retry_after=getattr(error, "retry_after", None),
        )

    def _elapsed_ms(self, started: float) -> int:
        return int((self._timer() - started) * 1000)
