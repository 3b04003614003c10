"""OpenAI-compatible provider client (chat completions and embeddings)."""
import httpx
from typing import List, Dict, Optional
import structlog

from studymate import config
from studymate.errors import ProviderUnavailable

logger = structlog.get_logger()


class ProviderClient:
    """Async client for an OpenAI-compatible API such as OpenRouter."""

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the provider client.

        Args:
            base_url: API base URL (defaults to config.OPENROUTER_BASE_URL)
            api_key: Bearer token (defaults to config.OPENROUTER_API_KEY)
            timeout: Default request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or config.OPENROUTER_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.OPENROUTER_API_KEY
        self.timeout = timeout or config.PROVIDER_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> Dict[str, str]:
        headers = {
            "HTTP-Referer": config.OPENROUTER_SITE_URL,
            "X-Title": config.APP_TITLE,
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """Send a chat completion request and return the reply text.

        Args:
            system_prompt: System message content
            user_prompt: User message content
            model: Model to use (defaults to config.CHAT_MODEL)
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Completion token limit
            timeout: Per-call timeout override in seconds
            history: Earlier role/content messages placed before the user prompt

        Returns:
            Content of the first choice's message

        Raises:
            ProviderUnavailable: On connection, HTTP or response format errors
        """
        model = model or config.CHAT_MODEL

        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                *(history or []),
                {"role": "user", "content": user_prompt},
            ],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        logger.info(
            "chat_request",
            model=model,
            prompt_length=len(user_prompt),
            max_tokens=max_tokens,
        )

        try:
            response = await self._get_client().post(
                "/chat/completions",
                json=payload,
                timeout=timeout or self.timeout,
            )
            response.raise_for_status()
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except httpx.TimeoutException as e:
            logger.error("chat_timeout", model=model, error=str(e))
            raise ProviderUnavailable(
                f"Chat request timed out for model {model}", attempts=[model]
            ) from e
        except httpx.HTTPError as e:
            logger.error(
                "chat_http_error",
                model=model,
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise ProviderUnavailable(
                f"Chat request failed for model {model}", attempts=[model]
            ) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("chat_malformed_response", model=model, error=str(e))
            raise ProviderUnavailable(
                f"Malformed chat response from model {model}", attempts=[model]
            ) from e

        if not isinstance(content, str) or not content.strip():
            logger.error("chat_empty_response", model=model)
            raise ProviderUnavailable(
                f"Empty chat response from model {model}", attempts=[model]
            )

        logger.info("chat_response", model=model, response_length=len(content))
        return content

    async def embeddings(
        self,
        text: str,
        model: str,
        timeout: Optional[float] = None,
    ) -> List[float]:
        """Generate an embedding vector for a text with one model.

        Args:
            text: Text to embed
            model: Embedding model name
            timeout: Per-call timeout override in seconds

        Returns:
            The raw embedding list from the response (unvalidated)

        Raises:
            httpx.HTTPError: On API errors or timeouts
            ValueError: If the response carries no embedding
        """
        payload = {"model": model, "input": text}

        logger.debug("embedding_request", model=model, text_length=len(text))

        response = await self._get_client().post(
            "/embeddings",
            json=payload,
            timeout=timeout or self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        try:
            embedding = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"No embedding in response from {model}") from e

        logger.debug(
            "embedding_response",
            model=model,
            dimension=len(embedding) if isinstance(embedding, list) else None,
        )

        return embedding

    async def list_models(self) -> List[str]:
        """List model ids advertised by the provider.

        Returns:
            List of model names

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            response = await self._get_client().get("/models", timeout=10.0)
            response.raise_for_status()
            data = response.json()
            return [m["id"] for m in data.get("data", [])]
        except httpx.HTTPError as e:
            logger.error("list_models_error", error=str(e))
            raise
