"""OpenAI-compatible LLM and embedding client wrapper with error handling."""
import httpx
from typing import List, Dict, Optional
import structlog

from docqa import config

logger = structlog.get_logger()


class LLMClient:
    """Async client for an OpenAI-compatible chat and embeddings API."""

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL (defaults to config.OPENAI_BASE_URL)
            api_key: Bearer token (defaults to config.OPENAI_API_KEY)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            headers=headers,
            transport=self.transport,
        )

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to config.CHAT_MODEL)
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'choices' containing 'message'

        Raises:
            httpx.HTTPError: On API errors
            httpx.ConnectError: If the provider is unreachable
            ValueError: If the body is not a JSON object
        """
        model = model or config.CHAT_MODEL

        payload = {
            "model": model,
            "messages": messages,
        }

        if temperature is not None:
            payload["temperature"] = temperature

        try:
            async with self._client() as client:
                logger.info(
                    "llm_chat_request",
                    model=model,
                    message_count=len(messages),
                    temperature=temperature,
                )

                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()
                if not isinstance(data, dict):
                    raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

                logger.info(
                    "llm_chat_response",
                    model=model,
                    choice_count=len(data.get("choices", [])),
                )

                return data

        except httpx.ConnectError as e:
            logger.error("llm_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "llm_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

    async def invoke(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Send a chat request and return the first choice's content.

        Raises:
            httpx.HTTPError: On API errors
            ValueError: If the response carries no message content
        """
        data = await self.chat(messages, model=model, temperature=temperature)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Malformed chat response: {e}") from e
        if content is None:
            raise ValueError("Chat response has no content")
        return content

    async def embeddings(
        self,
        inputs: List[str],
        model: str = None,
    ) -> Dict:
        """Generate embeddings for a batch of texts.

        Args:
            inputs: Texts to embed
            model: Model to use (defaults to config.EMBEDDING_MODEL)

        Returns:
            Response dict with a 'data' list of {'index', 'embedding'}

        Raises:
            httpx.HTTPError: On API errors
            ValueError: If the body is not a JSON object
        """
        model = model or config.EMBEDDING_MODEL

        payload = {
            "model": model,
            "input": inputs,
        }

        try:
            async with self._client() as client:
                logger.debug(
                    "llm_embedding_request",
                    model=model,
                    input_count=len(inputs),
                )

                response = await client.post(
                    f"{self.base_url}/embeddings",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()
                if not isinstance(data, dict):
                    raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

                logger.debug(
                    "llm_embedding_response",
                    model=model,
                    vector_count=len(data.get("data", [])),
                )

                return data

        except httpx.HTTPError as e:
            logger.error("llm_embedding_error", error=str(e), base_url=self.base_url)
            raise

    async def list_models(self) -> List[str]:
        """List model identifiers available at the provider.

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/models")
                response.raise_for_status()
                data = response.json()
                return [m["id"] for m in data.get("data", [])]
        except httpx.HTTPError as e:
            logger.error("llm_list_models_error", error=str(e))
            raise


# Global client instances
chat_client = LLMClient()
embedding_client = LLMClient(base_url=config.OPENAI_EMBEDDINGS_BASE_URL)
