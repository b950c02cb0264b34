"""
HTTP client for provider calls.

One pooled ``httpx.AsyncClient`` serves every provider. Failures are
mapped into the gateway error hierarchy here, so nothing above this
layer sees an httpx exception.
"""

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from opentelemetry import trace

from .errors import (
    ProviderAuthenticationError,
    ProviderHttpError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderTransportError,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ProviderClient:
    """
    Executes translated requests against provider endpoints.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        request_timeout: float = 60.0,
        stream_timeout: float = 300.0,
    ):
        """
        Initialize the client.

        Args:
            client: Shared HTTP client. One is created (and owned) if omitted.
            request_timeout: Deadline for a non-streaming call, in seconds
            stream_timeout: Deadline for the whole life of a stream, in seconds
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(stream_timeout, connect=10.0),
        )
        self.request_timeout = request_timeout
        self.stream_timeout = stream_timeout

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def invoke(
        self,
        url: str,
        payload: Dict[str, Any],
        *,
        headers: Optional[Dict[str, str]] = None,
        streaming: bool = False,
        timeout: Optional[float] = None,
        provider: Optional[str] = None,
    ):
        """
        Call a provider endpoint.

        Args:
            url: Full endpoint URL
            payload: JSON body
            headers: Request headers, including credentials
            streaming: Return the live byte stream instead of a parsed body
            timeout: Overrides the default deadline for this call
            provider: Provider id, for errors and telemetry

        Returns:
            Parsed JSON body, or an async iterator of raw byte chunks when
            streaming. Closing the iterator closes the connection.

        Raises:
            ProviderHttpError: On a non-2xx status
            ProviderTransportError: If the provider cannot be reached
            ProviderTimeoutError: If the deadline passes
        """
        if streaming:
            return await self._open_stream(
                url, payload, headers or {}, timeout or self.stream_timeout, provider
            )
        return await self._request(
            url, payload, headers or {}, timeout or self.request_timeout, provider
        )

    async def _request(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        timeout: float,
        provider: Optional[str],
    ) -> Dict[str, Any]:
        with tracer.start_as_current_span("provider.request") as span:
            span.set_attribute("llm.provider", provider or "")
            span.set_attribute("llm.streaming", False)

            start = time.perf_counter()
            try:
                response = await asyncio.wait_for(
                    self._client.post(url, json=payload, headers=headers),
                    timeout,
                )
            except asyncio.TimeoutError:
                raise ProviderTimeoutError(f"Request timed out after {timeout}s", provider)
            except httpx.TimeoutException as e:
                raise ProviderTimeoutError(f"Request timed out: {e}", provider)
            except httpx.RequestError as e:
                raise ProviderTransportError(f"Connection failed: {e}", provider)
            finally:
                duration_ms = (time.perf_counter() - start) * 1000
                span.set_attribute("llm.duration_ms", duration_ms)
                logger.info(f"{provider} request finished in {duration_ms:.0f}ms")

            span.set_attribute("http.status_code", response.status_code)
            _raise_for_status(response, provider)

            try:
                return response.json()
            except ValueError:
                raise ProviderTransportError(
                    f"Invalid JSON in response: {response.text[:200]}", provider
                )

    async def _open_stream(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        timeout: float,
        provider: Optional[str],
    ) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        start = time.perf_counter()

        request = self._client.build_request("POST", url, json=payload, headers=headers)
        try:
            response = await asyncio.wait_for(self._client.send(request, stream=True), timeout)
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(f"Stream did not open within {timeout}s", provider)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Stream timed out: {e}", provider)
        except httpx.RequestError as e:
            raise ProviderTransportError(f"Connection failed: {e}", provider)

        if not response.is_success:
            try:
                await response.aread()
            finally:
                await response.aclose()
            _raise_for_status(response, provider)

        return self._iter_stream(response, deadline, start, provider)

    async def _iter_stream(
        self,
        response: httpx.Response,
        deadline: float,
        start: float,
        provider: Optional[str],
    ) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        span = tracer.start_span("provider.stream")
        span.set_attribute("llm.provider", provider or "")
        span.set_attribute("llm.streaming", True)
        span.set_attribute("http.status_code", response.status_code)

        chunks = response.aiter_bytes()
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise ProviderTimeoutError("Stream deadline exceeded", provider)
                try:
                    chunk = await asyncio.wait_for(chunks.__anext__(), remaining)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    raise ProviderTimeoutError("Stream deadline exceeded", provider)
                except httpx.TimeoutException as e:
                    raise ProviderTimeoutError(f"Stream timed out: {e}", provider)
                except httpx.RequestError as e:
                    raise ProviderTransportError(f"Stream interrupted: {e}", provider)
                yield chunk
        finally:
            await response.aclose()
            duration_ms = (time.perf_counter() - start) * 1000
            span.set_attribute("llm.duration_ms", duration_ms)
            span.end()
            logger.info(f"{provider} stream closed after {duration_ms:.0f}ms")


def _raise_for_status(response: httpx.Response, provider: Optional[str]) -> None:
    """Map a non-2xx response to the gateway error hierarchy."""
    if response.is_success:
        return

    try:
        body = response.json()
    except ValueError:
        body = response.text

    status = response.status_code
    logger.error(f"{provider} returned {status}")

    if status in (401, 403):
        raise ProviderAuthenticationError(status, body, provider)

    if status == 429:
        retry_after = response.headers.get("retry-after")
        try:
            retry_after = float(retry_after) if retry_after else None
        except ValueError:
            retry_after = None
        raise ProviderRateLimitError(status, body, provider, retry_after=retry_after)

    raise ProviderHttpError(status, body, provider)
