"""Text-generation provider wrapper over the OpenAI-compatible chat API.

Two interchangeable backends are supported: OpenAI directly, and OpenRouter
through the same client pointed at the OpenRouter base URL.
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

import openai

from config.exceptions import (
    ConfigurationError,
    InvalidModelError,
    MissingCredentialError,
    ProviderError,
    TransientProviderError,
)
from config.settings import Settings
from models.enums import Provider

logger = logging.getLogger(__name__)

OPENAI_MODEL_PREFIXES = ("gpt-", "o1", "o3", "o4", "chatgpt-", "ft:")

_TRANSIENT_STATUS = {408, 409, 429}

ClientFactory = Callable[[Provider, str, Optional[str]], object]


def is_valid_api_key(key: Optional[str]) -> bool:
    return bool(key and key.strip())


def format_model(name: str, provider: Provider) -> str:
    """Qualify a bare model id with its vendor namespace where required."""
    name = (name or "").strip()
    if provider == Provider.OPENROUTER and name.startswith("gpt-") and "/" not in name:
        return f"openai/{name}"
    return name


def validate_model(name: str, provider: Provider) -> None:
    """Fail fast on model ids that cannot belong to the provider.

    Raises:
        InvalidModelError: If the id does not fit the provider's naming rules.
    """
    if not name or not name.strip():
        raise InvalidModelError(name, provider.value)
    if provider == Provider.OPENAI:
        if "/" in name or not name.startswith(OPENAI_MODEL_PREFIXES):
            raise InvalidModelError(name, provider.value)
    elif any(ch.isspace() for ch in name):
        raise InvalidModelError(name, provider.value)


def _default_client_factory(provider: Provider, api_key: str, base_url: Optional[str]):
    if base_url:
        return openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
    return openai.AsyncOpenAI(api_key=api_key)


def translate_error(e: Exception) -> Exception:
    """Map an openai library exception onto the plotter error tree."""
    if isinstance(e, openai.APIConnectionError):  # includes APITimeoutError
        return TransientProviderError(f"Provider connection failed: {e}")
    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ConfigurationError(f"Provider rejected credentials: {e}", {"status": e.status_code})
    if isinstance(e, openai.NotFoundError):
        return ConfigurationError(f"Model or endpoint not found: {e}", {"status": e.status_code})
    if isinstance(e, openai.APIStatusError):
        status = e.status_code
        if status in _TRANSIENT_STATUS or status >= 500:
            retry_after = None
            header = e.response.headers.get("retry-after") if e.response is not None else None
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
            return TransientProviderError(str(e.message), status, retry_after)
        return ProviderError(str(e.message), status)
    if isinstance(e, openai.APIError):
        return TransientProviderError(f"Provider stream failed: {e}")
    return e


class ProviderClient:
    """Async completion/streaming client for the configured provider.

    Clients are cached per provider on this instance.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or Settings()
        self._client_factory = client_factory or _default_client_factory
        self._sleep = sleep
        self._clients: dict[Provider, object] = {}
        self.total_calls = 0
        self.total_retries = 0

    @property
    def provider(self) -> Provider:
        return Provider.OPENAI if self.settings.use_openai else Provider.OPENROUTER

    @property
    def supports_json_mode(self) -> bool:
        return self.provider == Provider.OPENAI

    def get_client(self):
        """Return the cached backend client for the active provider.

        Raises:
            MissingCredentialError: If the provider's API key is blank.
        """
        provider = self.provider
        if provider in self._clients:
            return self._clients[provider]

        if provider == Provider.OPENAI:
            key, base_url = self.settings.openai_api_key, None
        else:
            key, base_url = self.settings.openrouter_api_key, self.settings.openrouter_base_url
        if not is_valid_api_key(key):
            raise MissingCredentialError(provider.value)

        client = self._client_factory(provider, key.strip(), base_url)
        self._clients[provider] = client
        logger.debug("Created %s client", provider.value)
        return client

    def resolve_model(self, name: Optional[str] = None) -> str:
        """Format then validate a model id for the active provider."""
        model = format_model(name or self.settings.story_generation_model, self.provider)
        validate_model(model, self.provider)
        return model

    def _backoff(self, attempt: int, error: TransientProviderError) -> float:
        if error.retry_after is not None:
            return min(error.retry_after, self.settings.provider_backoff_max)
        return min(self.settings.provider_backoff_base * (2 ** attempt), self.settings.provider_backoff_max)

    def _request_kwargs(self, messages, model, temperature, max_tokens, json_mode) -> dict:
        kwargs = {"model": model, "messages": messages, "temperature": temperature}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode and self.supports_json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def complete(
        self,
        messages: list[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> str:
        """Send a request and return the text of one completion.

        Raises:
            ConfigurationError: Missing key, invalid model, or auth failure.
            TransientProviderError: Transient faults outlasted the retries.
            ProviderError: Any other rejected request.
        """
        model = self.resolve_model(model)
        client = self.get_client()
        kwargs = self._request_kwargs(messages, model, temperature, max_tokens, json_mode)
        max_retries = self.settings.provider_max_retries

        attempt = 0
        while True:
            self.total_calls += 1
            logger.debug("Provider call: provider=%s model=%s attempt=%d", self.provider.value, model, attempt + 1)
            try:
                response = await client.chat.completions.create(**kwargs)
            except Exception as e:
                error = translate_error(e)
                if not isinstance(error, TransientProviderError) or attempt >= max_retries:
                    if error is e:
                        raise
                    raise error from e
                delay = self._backoff(attempt, error)
                logger.warning("Transient provider fault (%s), retrying in %.1fs", error, delay)
                attempt += 1
                self.total_retries += 1
                await self._sleep(delay)
                continue

            text = response.choices[0].message.content or ""
            logger.debug("Provider result: %d chars", len(text))
            return text

    async def stream(
        self,
        messages: list[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas of a streaming completion.

        Opening the stream is retried on transient faults. A fault after the
        first delta has been yielded is surfaced as TransientProviderError.
        The provider stream is closed on every exit path, including when the
        consumer closes this generator early.
        """
        model = self.resolve_model(model)
        client = self.get_client()
        kwargs = self._request_kwargs(messages, model, temperature, max_tokens, json_mode=False)
        kwargs["stream"] = True
        max_retries = self.settings.provider_max_retries

        attempt = 0
        while True:
            self.total_calls += 1
            logger.debug("Provider stream: provider=%s model=%s attempt=%d", self.provider.value, model, attempt + 1)
            try:
                response = await client.chat.completions.create(**kwargs)
                break
            except Exception as e:
                error = translate_error(e)
                if not isinstance(error, TransientProviderError) or attempt >= max_retries:
                    if error is e:
                        raise
                    raise error from e
                delay = self._backoff(attempt, error)
                logger.warning("Transient provider fault opening stream (%s), retrying in %.1fs", error, delay)
                attempt += 1
                self.total_retries += 1
                await self._sleep(delay)

        received = 0
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    received += len(delta)
                    yield delta
        except openai.APIError as e:
            raise translate_error(e) from e
        finally:
            close = getattr(response, "close", None)
            if close is not None:
                await close()
            logger.debug("Provider stream closed after %d chars", received)

    def get_usage_summary(self) -> dict:
        """Return call count statistics."""
        return {"total_calls": self.total_calls, "total_retries": self.total_retries}
