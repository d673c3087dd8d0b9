"""
Datagran memory API client.

Each operation is one POST against a fixed path, driven by a small retry
state machine:

    IDLE -> ATTEMPTING -> SUCCEEDED
                       -> BACKOFF -> ATTEMPTING ...
                       -> FAILED

Every attempt runs under a `CancelToken` that a `timeout_ms` timer fires.
Statuses 408/429/5xx and transport failures are retried with exponential
backoff; any other non-2xx status fails immediately. The client holds no
mutable state between calls.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from core.exceptions import MemoryApiError, TransportError
from core.logger import get_logger

from .config import RuntimeConfig
from .normalizer import as_record, as_string
from .schemas import ConnectRequest, IngestRequest, QueryRequest

logger = get_logger(__name__)

CONNECT_PATH = "/api/connections/memory"
INGEST_PATH = "/api/context/compile"
QUERY_PATH = "/api/context/brain"

RETRYABLE_STATUSES = frozenset({408, 429})

RemoteResponse = Any
SleepFn = Callable[[float], Awaitable[Any]]


class AttemptState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget, per-attempt timeout and backoff curve."""

    retries: int
    timeout_s: float
    base_delay_s: float = 0.25
    max_delay_s: float = 2.0

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> "RetryPolicy":
        return cls(retries=config.http.retries, timeout_s=config.http.timeout_ms / 1000)

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def backoff(self, attempt: int) -> float:
        return min(self.max_delay_s, self.base_delay_s * 2 ** attempt)


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES or status >= 500


class CancelToken:
    """One-shot cancellation signal shared by an attempt and its timer."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def run(self, awaitable: Awaitable[Any]) -> Any:
        """Await `awaitable` unless the token fires first; then abort it and raise `TransportError`."""

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise TransportError(message=f"Request aborted: {self.reason}")


def parse_response_body(text: str) -> RemoteResponse:
    """JSON when possible, the raw text otherwise; an empty body reads as `{}`."""

    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return text


def extract_error_message(body: RemoteResponse, status: int) -> str:
    record = as_record(body)
    message = as_string(record.get("error")) or as_string(record.get("message"))
    if message:
        return message
    if isinstance(body, str) and body.strip():
        return body.strip()
    return f"Memory request failed with HTTP {status}"


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

def build_connect_body(request: ConnectRequest) -> Dict[str, Any]:
    end_user: Dict[str, Any] = {"external_id": request.end_user_external_id}
    if request.email is not None:
        end_user["email"] = request.email
    body: Dict[str, Any] = {"end_user": end_user}
    if request.metadata is not None:
        body["metadata"] = request.metadata
    return body


def build_ingest_body(request: IngestRequest) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "name": request.name,
        "text": request.text,
        "type": request.type.value,
    }
    optional = {
        "connection_id": request.connection_id,
        "end_user_external_id": request.end_user_external_id,
        "ref": request.ref,
        "metadata": request.metadata,
    }
    body.update({key: value for key, value in optional.items() if value is not None})
    return body


def build_query_body(request: QueryRequest) -> Dict[str, Any]:
    body: Dict[str, Any] = {"question": request.question}
    optional = {
        "connection_id": request.connection_id,
        "end_user_external_id": request.end_user_external_id,
        "mind_state": request.mind_state.value if request.mind_state is not None else None,
        "providers": list(request.providers) if request.providers is not None else None,
        "include": request.include.model_dump(exclude_none=True) if request.include is not None else None,
        "max_tokens": request.max_tokens,
        "temperature": request.temperature,
    }
    body.update({key: value for key, value in optional.items() if value is not None})
    return body


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class RequestExecution:
    """Runs one logical call through the attempt/backoff state machine."""

    def __init__(
        self,
        operation: str,
        send: Callable[[], Awaitable[httpx.Response]],
        policy: RetryPolicy,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.operation = operation
        self._send = send
        self.policy = policy
        self._sleep = sleep
        self.state = AttemptState.IDLE
        self.attempt = 0
        self.history: List[AttemptState] = [AttemptState.IDLE]

    def _transition(self, state: AttemptState) -> None:
        self.state = state
        self.history.append(state)

    async def run(self) -> RemoteResponse:
        self._transition(AttemptState.ATTEMPTING)
        while True:
            try:
                payload = await self._attempt()
            except (MemoryApiError, TransportError) as exc:
                if not exc.retryable or self.attempt + 1 >= self.policy.max_attempts:
                    self._transition(AttemptState.FAILED)
                    logger.error(
                        "Memory request failed",
                        operation=self.operation,
                        attempts=self.attempt + 1,
                        status=getattr(exc, "status", None),
                        error=exc.message,
                    )
                    raise
                delay = self.policy.backoff(self.attempt)
                self._transition(AttemptState.BACKOFF)
                logger.warning(
                    "Memory request failed, retrying",
                    operation=self.operation,
                    attempt=self.attempt + 1,
                    delay_s=delay,
                    status=getattr(exc, "status", None),
                    error=exc.message,
                )
                await self._sleep(delay)
                self.attempt += 1
                self._transition(AttemptState.ATTEMPTING)
                continue

            self._transition(AttemptState.SUCCEEDED)
            return payload

    async def _attempt(self) -> RemoteResponse:
        token = CancelToken()
        timer = asyncio.get_running_loop().call_later(
            self.policy.timeout_s,
            token.cancel,
            f"timed out after {int(self.policy.timeout_s * 1000)}ms",
        )
        try:
            response = await token.run(self._send())
        except httpx.TransportError as exc:
            raise TransportError(message=f"Memory request transport error: {exc!r}") from exc
        finally:
            timer.cancel()

        payload = parse_response_body(response.text)
        if response.is_success:
            return payload

        status = response.status_code
        raise MemoryApiError(
            message=extract_error_message(payload, status),
            status=status,
            body=payload,
            retryable=is_retryable_status(status),
        )


class MemoryClient:
    """
    Stateless client for the three memory operations.

    `transport` and `sleep` are injection points for tests; production code
    leaves both at their defaults.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFn = asyncio.sleep,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.base_url = config.base_url
        self._api_key = config.api_key
        self.policy = policy or RetryPolicy.from_config(config)
        self._transport = transport
        self._sleep = sleep

    async def connect(self, request: ConnectRequest) -> RemoteResponse:
        return await self._post("connect", CONNECT_PATH, build_connect_body(request))

    async def ingest(self, request: IngestRequest) -> RemoteResponse:
        return await self._post("ingest", INGEST_PATH, build_ingest_body(request))

    async def query(self, request: QueryRequest) -> RemoteResponse:
        return await self._post("query", QUERY_PATH, build_query_body(request))

    async def _post(self, operation: str, path: str, body: Dict[str, Any]) -> RemoteResponse:
        url = f"{self.base_url}{path}"
        headers = {
            "content-type": "application/json",
            "x-api-key": self._api_key,
        }
        content = json.dumps(body).encode("utf-8")
        logger.debug("Sending memory request", operation=operation, url=url)

        async with httpx.AsyncClient(transport=self._transport, timeout=self.policy.timeout_s) as client:

            def send() -> Awaitable[httpx.Response]:
                return client.post(url, content=content, headers=headers)

            execution = RequestExecution(operation, send, self.policy, self._sleep)
            return await execution.run()


# ---------------------------------------------------------------------------
# Collaborator interface used by the tool adapters
# ---------------------------------------------------------------------------

async def connect(request: ConnectRequest, config: RuntimeConfig, **client_options: Any) -> RemoteResponse:
    return await MemoryClient(config, **client_options).connect(request)


async def ingest(request: IngestRequest, config: RuntimeConfig, **client_options: Any) -> RemoteResponse:
    return await MemoryClient(config, **client_options).ingest(request)


async def query(request: QueryRequest, config: RuntimeConfig, **client_options: Any) -> RemoteResponse:
    return await MemoryClient(config, **client_options).query(request)
