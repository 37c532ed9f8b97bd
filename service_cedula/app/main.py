"""
Cédula lookup service.

Exposes the JCE registry query pipeline over HTTP.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

import httpx
import redis.asyncio as redis
from fastapi import Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import CedulaServiceError
from service_cedula.app.adapters.registry_client import RegistryClient
from service_cedula.app.caching.result_cache import ResultCache
from service_cedula.app.domain.models import ShapedResult, View
from service_cedula.app.domain.orchestrator import QueryOrchestrator
from service_cedula.app.domain.shaper import ResponseShaper
from service_cedula.app.ratelimit.token_bucket import AdmissionController, get_client_key
from service_cedula.app.validation.cedula import clean, format_display


SERVICE_NAME = "cedula"
SERVICE_PORT = 8080
SERVICE_VERSION = "1.0.0"
API_PREFIX = "/api/v1/jce"


class ConsultaRequest(BaseModel):
    """Body of POST /consultar."""

    model_config = ConfigDict(populate_by_name=True)

    cedula: str = Field(..., max_length=32, description="Cédula, con o sin guiones")
    include_photo: bool = Field(default=True, alias="incluirFoto")
    view: Optional[str] = Field(default=View.COMPLETE.value, alias="formato")


class CedulaService(BaseService):
    """JCE consultation service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 redis_client: Optional[redis.Redis] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config)

        self.redis = redis_client or redis.from_url(
            self.config.redis_url,
            socket_timeout=self.config.redis_socket_timeout,
            socket_connect_timeout=self.config.redis_socket_timeout,
        )
        self.admission = AdmissionController.from_config(self.config, self.redis, metrics=self.metrics)
        self.cache = ResultCache(
            self.redis,
            ttl_seconds=self.config.cache_ttl_seconds,
            key_prefix=self.config.cache_key_prefix,
            metrics=self.metrics,
        )
        self.registry_client = RegistryClient.from_config(self.config, metrics=self.metrics, transport=transport)
        self.shaper = ResponseShaper(self.config.registry_photo_base_url)
        self.orchestrator = QueryOrchestrator(
            self.admission,
            self.cache,
            self.registry_client,
            self.shaper,
            metrics=self.metrics,
        )

        self._setup_cedula_routes()

    def _setup_cedula_routes(self):
        """Set up consultation routes."""

        @self.app.on_event("shutdown")
        async def shutdown_event():
            await self.registry_client.close()
            await self.redis.aclose()

        @self.app.post(f"{API_PREFIX}/consultar")
        async def consultar(body: ConsultaRequest, request: Request):
            """Look up a citizen by cédula."""
            client_key = get_client_key(request)
            self.logger.info(
                "POST /consultar",
                client_key=client_key,
                view=body.view,
                include_photo=body.include_photo
            )
            result = await self.orchestrator.query(
                body.cedula,
                view=body.view,
                include_photo=body.include_photo,
                client_key=client_key,
            )
            return self._result_response(result)

        @self.app.get(f"{API_PREFIX}/consultar/{{cedula}}")
        async def consultar_por_path(
            cedula: str,
            request: Request,
            formato: str = Query(default=View.COMPLETE.value),
            incluir_foto: bool = Query(default=False, alias="incluirFoto"),
        ):
            """Look up a citizen by cédula in the path. Photo is opt-in here."""
            client_key = get_client_key(request)
            self.logger.info(
                "GET /consultar",
                client_key=client_key,
                view=formato,
                include_photo=incluir_foto
            )
            result = await self.orchestrator.query(
                cedula,
                view=formato,
                include_photo=incluir_foto,
                client_key=client_key,
            )
            return self._result_response(result)

        @self.app.get(f"{API_PREFIX}/health")
        async def registry_health():
            """Upstream reachability probe."""
            reachable = await self.registry_client.check_connectivity()
            return JSONResponse(
                status_code=200 if reachable else 503,
                content={
                    "servicio": "JCE Consulta API",
                    "version": SERVICE_VERSION,
                    "estado": "UP" if reachable else "DOWN",
                    "jce_conectividad": "OK" if reachable else "ERROR",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
                headers={"Cache-Control": "no-cache"}
            )

        @self.app.get(f"{API_PREFIX}/info")
        async def service_info():
            """Configured limits and runtime state."""
            return JSONResponse(
                content={
                    "servicio": "JCE Consulta API",
                    "version": SERVICE_VERSION,
                    "formatos": list(View.supported()),
                    "limites": self.admission.describe(),
                    "cache_ttl_segundos": self.cache.ttl_seconds,
                    "circuit_breaker": self.registry_client.breaker_state(),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
                headers={"Cache-Control": "max-age=30"}
            )

    def _result_response(self, result: ShapedResult) -> JSONResponse:
        headers: Dict[str, str] = {
            "Cache-Control": "public, max-age=300" if result.success else "no-cache",
        }
        if result.retry_after is not None:
            headers["Retry-After"] = str(result.retry_after)
            headers["X-Rate-Limit-Retry-After"] = str(result.retry_after)
        if result.rate_limit_remaining is not None:
            headers["X-Rate-Limit-Remaining"] = str(result.rate_limit_remaining)

        return JSONResponse(status_code=result.http_status, content=result.to_payload(), headers=headers)

    def _client_address(self, request: Request) -> Optional[str]:
        return get_client_key(request)

    def _error_response(self, request: Request, error: CedulaServiceError) -> JSONResponse:
        """Errors raised outside the pipeline use the same body as pipeline failures."""
        echoed = format_display(clean(request.path_params.get("cedula"))) or None
        result = ShapedResult.failure(
            code=error.code,
            message=error.message,
            national_id=echoed,
            elapsed_ms=0,
            http_status=error.http_status,
        )
        return self._result_response(result)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check Redis connectivity."""
        return {"redis": "ok" if await self.cache.ping() else "error"}


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = CedulaService(config=config or get_config(SERVICE_NAME, SERVICE_PORT))
    return service.app


if __name__ == "__main__":
    service = CedulaService()
    service.run()
