"""
Test helpers and utilities for the Cédula lookup service.
"""

import math
import time
from typing import Any, Dict, List, Optional

import httpx

from shared.config import ServiceConfig, get_config


class TestDataFactory:
    """Factory for creating registry test data."""

    __test__ = False

    @staticmethod
    def create_registry_fields(**overrides: Optional[str]) -> Dict[str, Optional[str]]:
        """Upstream tag values for a found citizen."""
        fields: Dict[str, Optional[str]] = {
            "nombres": "JUAN CARLOS",
            "apellido1": "PEREZ",
            "apellido2": "GOMEZ",
            "fecha_nac": "1985-03-14",
            "lugar_nac": "SANTO DOMINGO",
            "fecha_expiracion": "2030-03-14",
            "sexo": "M",
            "est_civil": "C",
            "edad": "40",
            "cod_nacion": "DOM",
            "desc_nacionalidad": "DOMINICANA",
            "mun_ced": "001",
            "seq_ced": "1234567",
            "ocupacion": "INGENIERO",
            "conyugue": "MARIA RODRIGUEZ",
            "cedula_conyugue": "00198765432",
            "padre": "PEDRO PEREZ",
            "madre": "ANA GOMEZ",
            "cedula_vieja": "123456",
            "pasaporte": "SC1234567",
            "fotourl": "/fotos/00112345671.jpg",
            "categoria": "1",
            "desc_categoria": "CEDULADO",
            "estatus": "A",
            "cod_causa": "0",
            "desc_causa_inhabilidad": "NINGUNA",
            "desc_tipo_causa": "NINGUNA",
            "success": "true",
            "message": "OK",
            "responsetime": "120",
        }
        fields.update(overrides)
        return fields

    @staticmethod
    def create_registry_xml(**overrides: Optional[str]) -> str:
        """Render upstream XML. Tags overridden with None are left out."""
        fields = TestDataFactory.create_registry_fields(**overrides)
        body = "".join(
            f"<{tag}>{value}</{tag}>" for tag, value in fields.items() if value is not None
        )
        return f'<?xml version="1.0" encoding="utf-8"?><root>{body}</root>'

    @staticmethod
    def create_not_found_xml() -> str:
        return TestDataFactory.create_registry_xml(
            nombres="",
            apellido1="",
            apellido2="",
            success="false",
            message="Cedula no encontrada",
        )


class RegistryStub:
    """httpx transport handler that replays queued upstream answers.

    Each queued item is either an ``httpx.Response`` or an exception to raise.
    When the queue is empty the last item is repeated.
    """

    def __init__(self, *answers: Any):
        self.answers: List[Any] = list(answers)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    @property
    def calls(self) -> int:
        return len(self.requests)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class InMemoryRedis:
    """Minimal asyncio Redis stand-in for tests: strings with TTL and the admission script."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._strings: Dict[str, Any] = {}
        self._expiry: Dict[str, float] = {}
        self._hashes: Dict[str, Dict[str, str]] = {}

    def _alive(self, key: str) -> bool:
        deadline = self._expiry.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._strings.pop(key, None)
            self._hashes.pop(key, None)
            self._expiry.pop(key, None)
            return False
        return True

    async def get(self, key: str):
        if not self._alive(key):
            return None
        value = self._strings.get(key)
        return value.encode("utf-8") if isinstance(value, str) else value

    async def set(self, key: str, value: Any, ex: Optional[int] = None):
        self._strings[key] = value
        if ex is not None:
            self._expiry[key] = self._clock() + ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._strings.pop(key, None) is not None or self._hashes.pop(key, None) is not None:
                removed += 1
            self._expiry.pop(key, None)
        return removed

    async def ping(self) -> bool:
        return True

    async def aclose(self):
        return None

    def register_script(self, script: str):
        return _AdmissionScript(self)


class _AdmissionScript:
    """Evaluates the admission script semantics against InMemoryRedis hashes."""

    def __init__(self, store: InMemoryRedis):
        self.store = store

    async def __call__(self, keys: List[str], args: List[Any]):
        key = keys[0]
        now, ttl = float(args[0]), float(args[1])
        bands = [args[i:i + 3] for i in range(2, len(args), 3)]
        state = self.store._hashes.get(key) if self.store._alive(key) else None
        state = state or {}

        levels = []
        wait = 0.0
        for index, (capacity, refill, period) in enumerate(bands, start=1):
            level = float(state.get(f"t{index}", capacity))
            stamp = float(state.get(f"ts{index}", now))
            level = min(float(capacity), level + max(0.0, now - stamp) * refill / period)
            levels.append(level)
            if level < 1:
                wait = max(wait, (1 - level) * period / refill)

        admitted = 1 if wait == 0.0 else 0
        if admitted:
            levels = [level - 1 for level in levels]

        new_state = {}
        for index, level in enumerate(levels, start=1):
            new_state[f"t{index}"] = str(level)
            new_state[f"ts{index}"] = str(now)
        self.store._hashes[key] = new_state
        self.store._expiry[key] = self.store._clock() + ttl / 1000.0

        return [admitted, int(math.floor(min(levels))), int(math.ceil(wait))]


def make_test_config(**overrides: Any) -> ServiceConfig:
    """Service config with fast retries and no .env influence."""
    settings: Dict[str, Any] = {
        "env": "test",
        "registry_base_url": "https://registry.test",
        "registry_photo_base_url": "https://fotos.test",
        "registry_service_id": "test-service",
        "retry_max_attempts": 3,
        "retry_base_delay": 0.0,
        "retry_max_delay": 0.0,
        "retry_jitter": False,
        "registry_overall_timeout": 5.0,
        "circuit_breaker_enabled": False,
        "_env_file": None,
    }
    settings.update(overrides)
    return get_config("cedula", 8080, **settings)
