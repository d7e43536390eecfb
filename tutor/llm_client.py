"""OpenAI-compatible LLM client with concurrency limiting, retry and timeout.

Every embedding and chat-completion request made by the engine goes through
``LLMClient``. The client:
- bounds the number of in-flight requests (excess callers wait in FIFO order)
- retries rate-limit, overload and timeout failures with exponential backoff
- enforces a hard timeout per attempt
- reports failures as ``ProviderError`` tagged with an ``ErrorKind``
"""
import asyncio
from typing import Dict, List, Optional, Protocol

import httpx
import structlog

from tutor import config
from tutor.errors import ErrorKind, ProviderError

logger = structlog.get_logger()

_STATUS_KINDS = {
    401: ErrorKind.AUTH,
    403: ErrorKind.AUTH,
    429: ErrorKind.RATE_LIMITED,
    503: ErrorKind.OVERLOADED,
    529: ErrorKind.OVERLOADED,
}


class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-dimension vector."""

    async def embed(self, text: str) -> List[float]: ...

    async def embed_batch(self, texts: List[str]) -> List[List[float]]: ...


class ChatProvider(Protocol):
    """Anything that turns a message list into a completion string."""

    async def complete(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> str: ...


def classify_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an ``ErrorKind``."""
    return _STATUS_KINDS.get(status_code, ErrorKind.UNKNOWN)


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class LLMClient:
    """Async client for an OpenAI-compatible chat and embeddings API."""

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        chat_model: str = None,
        embedding_model: str = None,
        timeout: float = None,
        max_concurrent_requests: int = None,
        retry_attempts: int = None,
        retry_delay: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL (defaults to config.LLM_BASE_URL)
            api_key: Bearer token (defaults to config.LLM_API_KEY)
            chat_model: Default chat model (defaults to config.CHAT_MODEL)
            embedding_model: Embedding model (defaults to config.EMBEDDING_MODEL)
            timeout: Hard timeout per attempt in seconds
            max_concurrent_requests: Size of the in-flight request pool
            retry_attempts: Retries after the first attempt for retryable errors
            retry_delay: Base backoff delay in seconds (doubled per attempt)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or config.LLM_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.LLM_API_KEY
        self.chat_model = chat_model or config.CHAT_MODEL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.timeout = timeout if timeout is not None else config.LLM_TIMEOUT
        self.max_concurrent_requests = (
            max_concurrent_requests or config.LLM_MAX_CONCURRENT_REQUESTS
        )
        self.retry_attempts = (
            retry_attempts if retry_attempts is not None else config.LLM_RETRY_ATTEMPTS
        )
        self.retry_delay = retry_delay if retry_delay is not None else config.LLM_RETRY_DELAY
        self._transport = transport
        self._slots = asyncio.Semaphore(self.max_concurrent_requests)

    async def complete(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Send a chat completion request and return the reply text.

        Raises:
            ProviderError: On API failure after retries, or on an empty reply
        """
        model = model or self.chat_model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        logger.info("llm_chat_request", model=model, message_count=len(messages))

        data = await self._request("/chat/completions", payload)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        if not content:
            logger.error("empty_llm_response", model=model)
            raise ProviderError("No response from model", kind=ErrorKind.UNKNOWN)

        logger.info("llm_chat_response", model=model, response_length=len(content))
        return content

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts in one request, preserving input order.

        Raises:
            ProviderError: On API failure or a malformed response
        """
        if not texts:
            return []

        logger.debug(
            "llm_embedding_request",
            model=self.embedding_model,
            count=len(texts),
        )

        data = await self._request(
            "/embeddings", {"model": self.embedding_model, "input": texts}
        )

        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list) or len(items) != len(texts):
            raise ProviderError(
                f"Embedding response malformed: expected {len(texts)} vectors, "
                f"got {len(items) if isinstance(items, list) else 0}",
                kind=ErrorKind.UNKNOWN,
            )

        items = sorted(items, key=lambda item: item.get("index", 0))
        vectors = [[float(v) for v in item["embedding"]] for item in items]

        logger.debug(
            "llm_embedding_response",
            model=self.embedding_model,
            dimension=len(vectors[0]) if vectors else 0,
        )
        return vectors

    async def _request(self, path: str, payload: Dict) -> Dict:
        """POST *payload*, retrying retryable failures with backoff.

        A request slot is held only while an attempt is in flight; it is
        released during the backoff sleep so queued callers can proceed.
        """
        attempt = 0
        while True:
            try:
                async with self._slots:
                    return await asyncio.wait_for(
                        self._post(path, payload), timeout=self.timeout
                    )
            except asyncio.TimeoutError as e:
                error = ProviderError(
                    f"Request timeout after {self.timeout}s",
                    kind=ErrorKind.TIMEOUT,
                )
                error.__cause__ = e
            except ProviderError as e:
                error = e

            if not error.retryable or attempt >= self.retry_attempts:
                logger.error(
                    "llm_request_failed",
                    path=path,
                    kind=error.kind.value,
                    status_code=error.status_code,
                    attempts=attempt + 1,
                    error=str(error),
                )
                raise error

            delay = self._backoff_delay(attempt, error)
            attempt += 1
            logger.warning(
                "llm_request_retry",
                path=path,
                kind=error.kind.value,
                attempt=attempt,
                max_retries=self.retry_attempts,
                delay=delay,
            )
            await asyncio.sleep(delay)

    def _backoff_delay(self, attempt: int, error: ProviderError) -> float:
        if error.kind is ErrorKind.RATE_LIMITED and error.retry_after is not None:
            return error.retry_after
        return self.retry_delay * (2 ** attempt)

    async def _post(self, path: str, payload: Dict) -> Dict:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}{path}", json=payload, headers=headers
                )
                response.raise_for_status()
                return response.json()

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise ProviderError(
                f"API request failed with status {status_code}",
                kind=classify_status(status_code),
                status_code=status_code,
                retry_after=_parse_retry_after(e.response),
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Request timeout: {e}", kind=ErrorKind.TIMEOUT
            ) from e
        except httpx.HTTPError as e:
            logger.error("llm_connection_error", error=str(e), base_url=self.base_url)
            raise ProviderError(
                f"API request failed: {e}", kind=ErrorKind.UNKNOWN
            ) from e
        except ValueError as e:
            raise ProviderError(
                f"Invalid JSON in API response: {e}", kind=ErrorKind.UNKNOWN
            ) from e
