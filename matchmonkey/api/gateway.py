"""Rate-limited gateway for all outbound service calls"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Hashable, Mapping, Optional
from urllib.parse import urlsplit

import aiohttp

from matchmonkey import __version__
from matchmonkey.models.config_models import GatewayConfig, MonitoringConfig
from matchmonkey.monitoring.circuit_breaker import CircuitBreaker, CircuitOpenError
from matchmonkey.monitoring.metrics import record_api_call, record_cache_hit
from matchmonkey.storage.cache import RunCache
from matchmonkey.utils.rate_limiter import RateLimiter
from matchmonkey.utils.retry import retry_with_backoff


logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base class for failures inside the gateway."""


class ThrottledError(GatewayError):
    """Service asked us to slow down."""

    def __init__(self, message: str = "throttled", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class TransientServiceError(GatewayError):
    """Timeout, connection failure, server error or malformed payload."""


class NotFoundError(GatewayError):
    """Service reported the requested entity does not exist."""


class ServiceError(GatewayError):
    """Non-retryable service failure (bad key, bad request, ...)."""


@dataclass
class GatewayResponse:
    status: int
    body: str
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass
class _Outcome:
    value: Any
    cacheable: bool


_NOT_FOUND = object()


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header (delta seconds or HTTP date).

    Args:
        value: Raw header value

    Returns:
        Seconds to wait, or None if absent/unparseable
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class ServiceGateway:
    """Single choke point for outbound HTTP calls.

    Every call goes through the per-run cache, in-flight sharing, a
    per-host minimum-interval throttle, retry with exponential backoff on
    throttling and transient faults, a hard per-call timeout and a
    per-service circuit breaker. Failures never propagate: callers get the
    ``empty`` value they supplied.
    """

    def __init__(
        self,
        min_interval: float = 0.2,
        timeout: float = 10.0,
        max_retries: int = 3,
        initial_backoff: float = 1.0,
        backoff_factor: float = 2.0,
        max_backoff: float = 30.0,
        breaker_threshold: int = 5,
        breaker_timeout: float = 60,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize gateway.

        Args:
            min_interval: Minimum seconds between calls to one host
            timeout: Hard timeout per call in seconds
            max_retries: Retry budget for throttled/transient failures
            initial_backoff: First backoff delay in seconds
            backoff_factor: Backoff multiplier
            max_backoff: Cap for a single backoff delay
            breaker_threshold: Consecutive failures before a service circuit opens
            breaker_timeout: Seconds an open circuit rejects calls
            clock: Monotonic time source
            sleep: Coroutine used for throttling and backoff
        """
        self.min_interval = min_interval
        self.timeout = timeout
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.backoff_factor = backoff_factor
        self.max_backoff = max_backoff
        self.breaker_threshold = breaker_threshold
        self.breaker_timeout = breaker_timeout
        self._clock = clock
        self._sleep = sleep

        self._limiters: Dict[str, RateLimiter] = {}
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, gateway: GatewayConfig,
                    monitoring: Optional[MonitoringConfig] = None) -> "ServiceGateway":
        monitoring = monitoring or MonitoringConfig()
        return cls(
            min_interval=gateway.min_interval,
            timeout=gateway.timeout,
            max_retries=gateway.max_retries,
            initial_backoff=gateway.initial_backoff,
            backoff_factor=gateway.backoff_factor,
            max_backoff=gateway.max_backoff,
            breaker_threshold=monitoring.circuit_breaker_threshold,
            breaker_timeout=monitoring.circuit_breaker_timeout,
        )

    async def __aenter__(self) -> "ServiceGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def limiter_for(self, host: str) -> RateLimiter:
        limiter = self._limiters.get(host)
        if limiter is None:
            limiter = RateLimiter(self.min_interval, clock=self._clock, sleep=self._sleep)
            self._limiters[host] = limiter
        return limiter

    def breaker_for(self, service: str) -> CircuitBreaker:
        breaker = self._breakers.get(service)
        if breaker is None:
            breaker = CircuitBreaker(
                service,
                failure_threshold=self.breaker_threshold,
                timeout=self.breaker_timeout,
                clock=self._clock,
            )
            self._breakers[service] = breaker
        return breaker

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": f"MatchMonkey/{__version__}"},
            )
        return self._session

    async def _send(self, method: str, url: str, params: Optional[Dict[str, str]],
                    json_body: Optional[Any]) -> GatewayResponse:
        """Perform one HTTP exchange. Replaced by fakes in tests."""
        session = await self._get_session()
        async with session.request(method, url, params=params, json=json_body) as resp:
            body = await resp.text()
            return GatewayResponse(resp.status, body, dict(resp.headers))

    async def _attempt(self, url: str, params: Optional[Dict[str, str]], method: str,
                       json_body: Optional[Any],
                       check: Optional[Callable[[Any], None]]) -> Any:
        await self.limiter_for(urlsplit(url).netloc).wait()

        try:
            response = await asyncio.wait_for(
                self._send(method, url, params, json_body), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise TransientServiceError(f"timed out after {self.timeout:.0f}s")
        except aiohttp.ClientError as e:
            raise TransientServiceError(f"{type(e).__name__}: {e}")

        if response.status == 429:
            raise ThrottledError(
                "HTTP 429", retry_after=parse_retry_after(response.headers.get("Retry-After"))
            )
        if response.status >= 500:
            raise TransientServiceError(f"HTTP {response.status}")

        try:
            payload = json.loads(response.body) if response.body else None
        except ValueError:
            if response.status == 404:
                raise NotFoundError("HTTP 404")
            if response.status >= 400:
                raise ServiceError(f"HTTP {response.status}")
            raise TransientServiceError("malformed JSON payload")

        if check is not None:
            check(payload)
        if response.status == 404:
            raise NotFoundError("HTTP 404")
        if response.status >= 400:
            raise ServiceError(f"HTTP {response.status}: {response.body[:200]}")
        return payload

    async def _request_with_retry(self, url: str, params: Optional[Dict[str, str]],
                                  method: str, json_body: Optional[Any],
                                  check: Optional[Callable[[Any], None]]) -> Any:
        retrying = retry_with_backoff(
            max_retries=self.max_retries,
            initial_delay=self.initial_backoff,
            backoff_factor=self.backoff_factor,
            max_delay=self.max_backoff,
            exceptions=(ThrottledError, TransientServiceError),
            sleep=self._sleep,
        )(self._attempt)
        try:
            return await retrying(url, params, method, json_body, check)
        except NotFoundError:
            # A definitive answer, so the circuit sees it as a success
            return _NOT_FOUND

    async def _fetch_uncached(self, service: str, url: str, params: Optional[Dict[str, str]],
                              method: str, json_body: Optional[Any],
                              check: Optional[Callable[[Any], None]],
                              normalize: Optional[Callable[[Any], Any]],
                              empty: Any, label: str) -> _Outcome:
        started = self._clock()
        breaker = self.breaker_for(service)
        try:
            payload = await breaker.call(
                self._request_with_retry, url, params, method, json_body, check
            )
        except CircuitOpenError:
            record_api_call(service, "circuit_open")
            logger.debug("%s circuit open, skipping %s", service, label)
            return _Outcome(empty, False)
        except ThrottledError:
            record_api_call(service, "throttled", self._clock() - started)
            logger.warning("%s API throttled, giving up on %s after %d retries",
                           service, label, self.max_retries)
            return _Outcome(empty, False)
        except TransientServiceError as e:
            record_api_call(service, "error", self._clock() - started)
            logger.error("%s API error: %s", service, str(e)[:200])
            return _Outcome(empty, False)
        except ServiceError as e:
            record_api_call(service, "error", self._clock() - started)
            logger.error("%s API error: %s", service, str(e)[:200])
            return _Outcome(empty, True)

        duration = self._clock() - started
        if payload is _NOT_FOUND:
            record_api_call(service, "not_found", duration)
            logger.info("%s has no data for %s (not found)", service, label)
            return _Outcome(empty, True)

        record_api_call(service, "success", duration)
        logger.debug("%s %s ok", service, label,
                     extra={"service": service, "operation": label, "duration": duration})
        if normalize is None:
            return _Outcome(payload, True)
        try:
            return _Outcome(normalize(payload), True)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("%s API error: unexpected payload for %s: %s", service, label, str(e)[:200])
            return _Outcome(empty, False)

    async def fetch_json(
        self,
        service: str,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        cache: Optional[RunCache] = None,
        cache_key: Optional[Hashable] = None,
        normalize: Optional[Callable[[Any], Any]] = None,
        check: Optional[Callable[[Any], None]] = None,
        empty: Any = None,
        method: str = "GET",
        json_body: Optional[Any] = None,
    ) -> Any:
        """Fetch and normalize a JSON resource.

        Args:
            service: Service family name, used for breaker and metrics
            url: Absolute URL
            params: Query parameters; None values are dropped
            cache: Per-run cache, or None to bypass caching
            cache_key: Normalized query key (required with cache)
            normalize: Converts the payload into the value returned
            check: Inspects the payload and raises NotFoundError,
                ThrottledError or ServiceError for in-band errors
            empty: Value returned on any failure
            method: HTTP method
            json_body: Optional JSON request body

        Returns:
            Normalized value, or empty on failure
        """
        query = None
        if params:
            query = {k: str(v) for k, v in params.items() if v is not None}
        label = str(cache_key[1:] if isinstance(cache_key, tuple) else (cache_key or url))[:120]

        async def fetch() -> _Outcome:
            return await self._fetch_uncached(
                service, url, query, method, json_body, check, normalize, empty, label
            )

        if cache is None or cache_key is None:
            return (await fetch()).value

        if cache_key in cache:
            record_cache_hit("hit")
        elif cache.is_inflight(cache_key):
            record_cache_hit("inflight")
        outcome = await cache.get_or_fetch(cache_key, fetch, should_cache=lambda o: o.cacheable)
        return outcome.value
