"""Admission control, caching and single-flight for compile requests."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from ..config import AppConfig
from .cache import LRUByteCache
from .errors import ValidationError
from .models import CompilationRequest, CompilationResult
from .orchestrator import CompileOrchestrator

_LOGGER = logging.getLogger(__name__)


class CompileService:
    """Front door for every compile request.

    Identical requests share one result: a cache hit returns immediately, and
    a request whose fingerprint is already being compiled waits for that job
    instead of starting its own. At most ``limits.max_concurrent_jobs`` jobs
    are inside the orchestrator at once.

    All state lives on the event loop that calls :meth:`submit`.
    """

    def __init__(
        self,
        config: AppConfig,
        orchestrator: CompileOrchestrator,
        cache: LRUByteCache | None = None,
    ) -> None:
        self._config = config
        self._orchestrator = orchestrator
        self._cache = cache if cache is not None else LRUByteCache(config.limits.cache_capacity_bytes)
        self._admission = asyncio.Semaphore(config.limits.max_concurrent_jobs)
        self._in_flight: dict[str, asyncio.Future[CompilationResult]] = {}

    @property
    def cache(self) -> LRUByteCache:
        return self._cache

    @property
    def orchestrator(self) -> CompileOrchestrator:
        return self._orchestrator

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def find_bad_options(self, options: Iterable[str]) -> list[str]:
        return self._orchestrator.find_bad_options(list(options))

    async def submit(self, request: CompilationRequest) -> CompilationResult:
        entry = self._orchestrator.lookup(request.compiler)
        if entry.settings.is_remote:
            raise ValidationError(f"Compiler {entry.id} is only available remotely")
        request = self._orchestrator.normalize(request)
        key = request.fingerprint()

        cached = self._cache.get(key)
        if cached is not None:
            _LOGGER.debug("Cache hit for %s", request.compiler)
            return cached

        pending = self._in_flight.get(key)
        if pending is not None:
            _LOGGER.debug("Joining in-flight compile for %s", request.compiler)
            return await asyncio.shield(pending)

        self._orchestrator.validate(request)

        future: asyncio.Future[CompilationResult] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            async with self._admission:
                result = await self._orchestrator.compile(request)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved; joiners that exist still receive it.
            future.exception()
            raise
        finally:
            self._in_flight.pop(key, None)

        future.set_result(result)
        if result.ok_to_cache:
            self._cache.put(key, result)
        else:
            _LOGGER.info("Not caching result for %s", request.compiler)
        return result


__all__ = ["CompileService"]
