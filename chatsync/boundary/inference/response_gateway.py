"""
Response gateway to the external inference endpoint.

Sends one question per call with a hard timeout, retries transient
failures with exponential backoff and serves first-turn questions from a
short-lived cache.

Failure mapping:
    timeout                      -> GatewayTimeoutError (not retried)
    transport error, HTTP 5xx    -> TransientError (retried up to max_attempts)
    HTTP 4xx                     -> ValidationError (not retried)
    body.error / no answer text  -> InferenceError

Dependencies: httpx, tenacity, chatsync.core.response_cache
System role: Response Gateway
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from chatsync.configs import InferenceSettings
from chatsync.core.exceptions import (
    GatewayError,
    GatewayTimeoutError,
    InferenceError,
    TransientError,
    ValidationError,
)
from chatsync.core.response_cache import ResponseCache, make_cache_key
from chatsync.models.chat import Answer
from chatsync.models.message import SourceRef
from chatsync.observability.log_utils import preview_text
from chatsync.observability.performance import PerformanceRecorder

logger = logging.getLogger(__name__)

LATENCY_EVENT = "response_latency"


class ResponseGateway:
    """
    Client for the inference endpoint.

    Attributes:
        client: Shared httpx.AsyncClient (owned by the composition root)
        settings: Endpoint, timeout, retry and generation settings
        cache: First-turn answer cache, None to disable caching
        recorder: Performance event recorder, None to disable
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: InferenceSettings,
        cache: ResponseCache | None = None,
        recorder: PerformanceRecorder | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """
        Initialize gateway.

        Args:
            client: httpx.AsyncClient used for every request
            settings: Inference settings
            cache: Response cache (consulted only for session-less questions)
            recorder: Receives one latency event per network call
            sleep: Backoff sleep (injectable for tests)
            clock: Latency clock in seconds (injectable for tests)
        """
        self.client = client
        self.settings = settings
        self.cache = cache
        self.recorder = recorder
        self._sleep = sleep
        self._clock = clock

    def build_payload(self, question: str, session_id: str | None = None) -> dict[str, Any]:
        """
        Build the request body.

        Generation parameters are bounded by InferenceSettings validation.

        Args:
            question: Trimmed question text
            session_id: Session context, omitted for first-turn questions

        Returns:
            dict: JSON body
        """
        payload: dict[str, Any] = {
            "question": question,
            "generationParams": {
                "temperature": self.settings.temperature,
                "maxTokens": self.settings.max_tokens,
                "stop": list(self.settings.stop_sequences),
            },
        }
        if session_id is not None:
            payload["sessionContext"] = {"sessionId": session_id}
        return payload

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return headers

    async def send(self, question: str, session_id: str | None = None) -> Answer:
        """
        Ask the inference endpoint one question.

        Session-less questions are served from the cache when a fresh entry
        exists; a hit issues no request.

        Args:
            question: User question
            session_id: Conversation context, None for a new chat

        Returns:
            Answer: Full answer text with sources and latency

        Raises:
            ValidationError: Empty question or HTTP 4xx
            GatewayTimeoutError: Request exceeded the hard timeout
            TransientError: Network/5xx failures after all attempts
            InferenceError: Endpoint reported an error or malformed body
        """
        text = question.strip()
        if not text:
            raise ValidationError("Question must not be empty", field="question")

        cache_key = None
        if session_id is None and self.cache is not None:
            cache_key = make_cache_key(text, new_session=True)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(
                    f"{__name__}:send - cache hit for '{preview_text(text)}'"
                )
                return cached.model_copy(update={"from_cache": True})

        payload = self.build_payload(text, session_id)
        started = self._clock()
        try:
            answer = await self._send_with_retry(payload)
        except GatewayError as e:
            self._record(started, outcome=type(e).__name__, session_id=session_id)
            raise
        except ValidationError:
            self._record(started, outcome="ValidationError", session_id=session_id)
            raise

        elapsed_ms = self._record(started, outcome="ok", session_id=session_id)
        answer = answer.model_copy(update={"processing_time_ms": elapsed_ms, "from_cache": False})
        if cache_key is not None:
            self.cache.set(cache_key, answer)
        return answer

    def _record(self, started: float, outcome: str, session_id: str | None) -> float:
        elapsed_ms = (self._clock() - started) * 1000
        if self.recorder is not None:
            self.recorder.record(
                LATENCY_EVENT,
                elapsed_ms,
                outcome=outcome,
                new_session=session_id is None,
            )
        return elapsed_ms

    async def _send_with_retry(self, payload: dict[str, Any]) -> Answer:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientError),
            stop=stop_after_attempt(self.settings.max_attempts),
            wait=wait_exponential(multiplier=self.settings.backoff_base_seconds, exp_base=2),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                answer = await self._post_once(payload)
        return answer

    def _log_retry(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"{__name__}:send - Retry {retry_state.attempt_number}/{self.settings.max_attempts} "
            f"in {delay:.2f}s after transient failure"
        )

    async def _post_once(self, payload: dict[str, Any]) -> Answer:
        timeout = self.settings.timeout_seconds
        try:
            response = await asyncio.wait_for(
                self.client.post(
                    self.settings.endpoint,
                    json=payload,
                    headers=self._headers(),
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise GatewayTimeoutError(
                f"Inference request timed out after {timeout:g}s",
                details={"timeout_seconds": timeout},
            ) from e
        except httpx.TransportError as e:
            raise TransientError(
                f"Inference endpoint unreachable: {type(e).__name__}",
                details={"error": str(e)},
            ) from e

        status = response.status_code
        if status >= 500:
            raise TransientError(f"Inference endpoint returned {status}", status_code=status)
        if status >= 400:
            raise ValidationError(
                f"Inference endpoint rejected the request ({status})",
                details={"status_code": status, "body": response.text[:200]},
            )
        return self.parse_response(response)

    @staticmethod
    def parse_response(response: httpx.Response) -> Answer:
        """
        Convert an endpoint response into an Answer.

        JSON bodies carry `text` (or `response`) plus optional `sourceRefs`
        or `sourceDocuments`; non-JSON bodies are plain-text answers.

        Raises:
            InferenceError: Body reports an error or carries no answer text
        """
        try:
            body = response.json()
        except ValueError:
            text = response.text.strip()
            if not text:
                raise InferenceError("Empty response from inference endpoint", status_code=response.status_code)
            return Answer(text=text)

        if isinstance(body, str):
            if not body.strip():
                raise InferenceError("Empty response from inference endpoint", status_code=response.status_code)
            return Answer(text=body)
        if not isinstance(body, dict):
            raise InferenceError("Malformed response: expected an object", status_code=response.status_code)

        if body.get("error"):
            raise InferenceError(
                str(body.get("message") or body["error"]),
                status_code=response.status_code,
                details={"error": body["error"]},
            )
        text = body.get("text") or body.get("response")
        if not isinstance(text, str) or not text.strip():
            raise InferenceError("Malformed response: missing answer text", status_code=response.status_code)
        return Answer(text=text, sources=_parse_sources(body))


def _parse_sources(body: dict[str, Any]) -> list[SourceRef]:
    sources: list[SourceRef] = []
    for ref in body.get("sourceRefs") or []:
        if isinstance(ref, dict):
            sources.append(
                SourceRef(
                    title=ref.get("title") or "Unknown",
                    url=ref.get("url"),
                    relevance=float(ref.get("relevance") or 0.0),
                )
            )
    for doc in body.get("sourceDocuments") or []:
        metadata = doc.get("metadata") if isinstance(doc, dict) else None
        if isinstance(metadata, dict):
            sources.append(
                SourceRef(
                    title=metadata.get("title") or "Unknown",
                    url=metadata.get("url"),
                    relevance=float(metadata.get("score") or 0.0),
                )
            )
    return sources
