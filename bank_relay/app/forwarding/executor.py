"""
mTLS Request Executor
=====================

Performs one buffered HTTPS round-trip to an upstream bank, presenting that
bank's client certificate.

Exchange stages:
    connecting -> sending -> awaiting-response -> buffering-body -> complete

Any transport failure before ``complete`` raises NetworkError tagged with the
stage it happened in. The whole exchange is bounded by a single deadline, so
a slow-dripping upstream cannot hold a request open. Upstream 4xx/5xx are
returned, never raised. There are no retries, and every call opens and
closes its own client so the connection is released on every exit path.

Each bank's SSLContext is built once, off the event loop, and reused.
"""

import asyncio
import logging
import ssl
import time
from typing import Callable, Dict, Mapping, Optional

import httpx

from ..config import Settings
from ..credentials import Bank, CredentialStore, Environment
from ..errors import NetworkError, UpstreamTimeoutError
from .models import ForwardRequest, ForwardResponse
from .tls import build_client_ssl_context

logger = logging.getLogger(__name__)

CONNECTING = "connecting"
SENDING = "sending"
AWAITING_RESPONSE = "awaiting-response"
BUFFERING_BODY = "buffering-body"

TransportFactory = Callable[[ssl.SSLContext], httpx.AsyncBaseTransport]


def default_transport(ssl_context: ssl.SSLContext) -> httpx.AsyncBaseTransport:
    return httpx.AsyncHTTPTransport(verify=ssl_context)


def _failure_stage(exc: httpx.TransportError, default: str) -> str:
    if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout, httpx.ProxyError)):
        return CONNECTING
    if isinstance(exc, (httpx.WriteError, httpx.WriteTimeout, httpx.LocalProtocolError)):
        return SENDING
    return default


def _describe(exc: Exception) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__


class MTLSExecutor:
    """
    Sends ForwardRequests over mutually authenticated TLS.

    Args:
        store: Credential store supplying hostnames and client identities
        timeout: httpx timeout applied to each connect/read/write operation
        deadline: Seconds allowed for the whole exchange, body included
        transport_factory: Builds the transport for a bank's SSLContext
                           (tests return an httpx.MockTransport)
        ca_bundle: PEM file trusted for server certificates instead of the
                   system store
    """

    def __init__(
        self,
        store: CredentialStore,
        timeout: Optional[httpx.Timeout] = None,
        deadline: float = 30.0,
        transport_factory: Optional[TransportFactory] = None,
        ca_bundle: Optional[str] = None,
    ):
        self.store = store
        self.timeout = timeout or httpx.Timeout(30.0, connect=10.0)
        self.deadline = deadline
        self.ca_bundle = ca_bundle
        self._transport_factory = transport_factory or default_transport
        self._contexts: Dict[Bank, ssl.SSLContext] = {}

    @classmethod
    def from_settings(
        cls,
        store: CredentialStore,
        settings: Settings,
        transport_factory: Optional[TransportFactory] = None,
    ) -> "MTLSExecutor":
        timeout = httpx.Timeout(
            settings.UPSTREAM_TIMEOUT_SECONDS,
            connect=settings.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
        )
        return cls(
            store,
            timeout=timeout,
            deadline=settings.UPSTREAM_TIMEOUT_SECONDS,
            transport_factory=transport_factory,
            ca_bundle=settings.UPSTREAM_CA_BUNDLE,
        )

    async def execute(
        self,
        bank: Bank,
        environment: Environment,
        path: str,
        method: str,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
    ) -> ForwardResponse:
        """
        Resolve the upstream host for ``bank``/``environment`` and forward.

        Returns:
            ForwardResponse with the upstream status, headers and full body

        Raises:
            ConfigurationError: Credentials for the bank are absent or malformed
            NetworkError: Connect, handshake or transport failure
            UpstreamTimeoutError: The exchange did not finish in time
            ValueError: The request is malformed (see ForwardRequest)
        """
        environment = Environment(environment)
        request = ForwardRequest(
            hostname=self.store.hostname(bank, environment),
            path=path,
            method=method,
            headers=dict(headers),
            body=body,
        )
        return await self.send(bank, request, environment=environment)

    async def client_context(self, bank: Bank) -> ssl.SSLContext:
        """
        SSLContext presenting ``bank``'s client identity.

        Built on a worker thread the first time it is needed: loading the
        trust store and the key pair is blocking work. Failures are not
        cached, so a ConfigurationError is raised on every attempt.
        """
        bank = Bank(bank)
        context = self._contexts.get(bank)
        if context is None:
            context = await asyncio.to_thread(self._build_context, bank)
            self._contexts[bank] = context
        return context

    def _build_context(self, bank: Bank) -> ssl.SSLContext:
        certificate, key = self.store.client_pair(bank)
        return build_client_ssl_context(certificate, key, bank=bank.value, cafile=self.ca_bundle)

    async def send(
        self,
        bank: Bank,
        request: ForwardRequest,
        environment: Optional[Environment] = None,
    ) -> ForwardResponse:
        bank = Bank(bank)
        label = f"{bank.value} ({environment.value})" if environment is not None else bank.value

        # Credentials are resolved before any socket is opened.
        ssl_context = await self.client_context(bank)

        headers = dict(request.headers)
        if request.header("Accept-Encoding") is None:
            headers["Accept-Encoding"] = "identity"

        progress = {"stage": AWAITING_RESPONSE}
        started = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                self._exchange(ssl_context, request, headers, progress),
                timeout=self.deadline,
            )

        except asyncio.TimeoutError:
            message = f"Upstream did not complete within {self.deadline:g}s"
            self._log_failure(label, progress["stage"], message, request, timed_out=True)
            raise UpstreamTimeoutError(message, stage=progress["stage"]) from None

        except httpx.TransportError as e:
            failed_at = _failure_stage(e, progress["stage"])
            timed_out = isinstance(e, httpx.TimeoutException)
            self._log_failure(label, failed_at, _describe(e), request, timed_out=timed_out)
            error_class = UpstreamTimeoutError if timed_out else NetworkError
            raise error_class(_describe(e), stage=failed_at) from e

        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.info(
            f"{label} {request.method} {request.hostname}{request.path_without_query} "
            f"-> {response.status_code} in {elapsed_ms}ms",
            extra={
                "bank": bank.value,
                "environment": environment.value if environment is not None else None,
                "method": request.method,
                "path": request.path_without_query,
                "status_code": response.status_code,
                "elapsed_ms": elapsed_ms,
            },
        )
        return response

    async def _exchange(
        self,
        ssl_context: ssl.SSLContext,
        request: ForwardRequest,
        headers: Dict[str, str],
        progress: Dict[str, str],
    ) -> ForwardResponse:
        async with httpx.AsyncClient(
            transport=self._transport_factory(ssl_context),
            timeout=self.timeout,
            follow_redirects=False,
        ) as client:
            async with client.stream(
                request.method,
                request.url,
                headers=headers,
                content=request.body,
            ) as upstream:
                progress["stage"] = BUFFERING_BODY
                chunks = [chunk async for chunk in upstream.aiter_raw()]
                return ForwardResponse(
                    status_code=upstream.status_code,
                    headers={k.lower(): v for k, v in upstream.headers.items()},
                    body=b"".join(chunks),
                )

    def _log_failure(
        self,
        label: str,
        stage: str,
        message: str,
        request: ForwardRequest,
        timed_out: bool,
    ) -> None:
        kind = "timeout" if timed_out else "network error"
        logger.error(
            f"Upstream {kind} for {label} at stage {stage} "
            f"[error_kind=network] {request.method} {request.path_without_query}: {message}",
            extra={
                "error_kind": "network",
                "stage": stage,
                "path": request.path_without_query,
            },
        )
