"""
Completion provider client (Gemini via LangChain).

Wraps ChatGoogleGenerativeAI with a per-call timeout, 429 retry with
exponential backoff, safety checks and cooperative cancellation.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Dict, Optional, Tuple

from langchain_core.prompts import ChatPromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI

from ..config import Settings, settings as default_settings
from ..utils.cancellation import CancellationToken, run_cancellable
from ..utils.content_safety import ContentSafetyError, check_content_safety, configure_safety_settings
from ..utils.errors import CompletionUnavailableError, ConfigurationError, OperationCancelledError

logger = logging.getLogger(__name__)


def is_rate_limited(error: Exception) -> bool:
    """True for provider errors that carry HTTP 429 / RESOURCE_EXHAUSTED"""
    for attr in ("code", "status_code"):
        value = getattr(error, attr, None)
        if value == 429 or getattr(value, "value", None) == 429:
            return True
    message = str(error)
    return "429" in message or "RESOURCE_EXHAUSTED" in message or "ResourceExhausted" in type(error).__name__


def response_text(response: Any) -> str:
    """Text content of an AIMessage; Gemini may return a list of content parts"""
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return str(content) if content is not None else ""


class CompletionClient:
    """
    Calls the completion provider with a prompt template and variables.

    Raises CompletionUnavailableError when the provider cannot produce text
    (retries exhausted, timeout, safety block, empty response) and
    OperationCancelledError when the cancellation token fires.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_factory: Optional[Callable[..., Any]] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.settings = settings or default_settings
        self._llm_factory = llm_factory or self._build_llm
        self._llms: Dict[Tuple[str, float, int], Any] = {}
        self._sleep = sleep

    def _build_llm(self, model: str, temperature: float, max_output_tokens: int):
        if not self.settings.gemini_api_key:
            raise ConfigurationError("Gemini API key is required. Set GEMINI_API_KEY in environment.")
        return ChatGoogleGenerativeAI(
            model=model,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            google_api_key=self.settings.gemini_api_key,
            safety_settings=configure_safety_settings(),
            # 429 backoff is handled in complete()
            max_retries=1
        )

    def get_llm(self, model: str, temperature: float, max_output_tokens: int):
        key = (model, temperature, max_output_tokens)
        if key not in self._llms:
            logger.info(f"Initializing completion model {model} (temperature={temperature})")
            self._llms[key] = self._llm_factory(model, temperature, max_output_tokens)
        return self._llms[key]

    def _retry_delay(self, attempt: int) -> float:
        return self.settings.completion_backoff_base_seconds * (2 ** attempt) + random.uniform(0, 1)

    async def complete(
        self,
        prompt: ChatPromptTemplate,
        variables: Dict[str, Any],
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        model: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Run prompt | llm and return the response text.

        Args:
            prompt: Chat prompt template (system + human messages, optional history)
            variables: Template variables
            temperature: Overrides MODEL_TEMPERATURE
            max_output_tokens: Overrides MODEL_MAX_OUTPUT_TOKENS
            model: Overrides MODEL_NAME
            cancel_token: Aborts the in-flight call and any backoff wait when fired

        Returns:
            Response text (may contain fenced or truncated JSON)

        Raises:
            CompletionUnavailableError: Provider could not produce a usable response
            ConfigurationError: GEMINI_API_KEY is missing
            OperationCancelledError: The cancel token fired
        """
        llm = self.get_llm(
            model or self.settings.model_name,
            self.settings.model_temperature if temperature is None else temperature,
            max_output_tokens or self.settings.model_max_output_tokens,
        )
        chain = prompt | llm
        max_retries = self.settings.completion_max_retries
        timeout = self.settings.completion_timeout_seconds

        for attempt in range(max_retries + 1):
            try:
                response = await run_cancellable(
                    asyncio.wait_for(chain.ainvoke(variables), timeout=timeout),
                    cancel_token
                )
            except asyncio.TimeoutError:
                if attempt < max_retries:
                    delay = self._retry_delay(attempt)
                    logger.warning(
                        f"Completion timed out after {timeout}s, retry {attempt + 1}/{max_retries} in {delay:.1f}s"
                    )
                    await run_cancellable(self._sleep(delay), cancel_token)
                    continue
                logger.error(f"Completion timed out after {timeout}s, retries exhausted")
                raise CompletionUnavailableError("Completion timed out", {"timeout": timeout})
            except OperationCancelledError:
                raise
            except Exception as e:
                if is_rate_limited(e) and attempt < max_retries:
                    delay = self._retry_delay(attempt)
                    logger.warning(
                        f"Completion rate limited (429), retry {attempt + 1}/{max_retries} in {delay:.1f}s"
                    )
                    await run_cancellable(self._sleep(delay), cancel_token)
                    continue
                logger.error(f"Completion request failed: {type(e).__name__}: {e}")
                raise CompletionUnavailableError(f"Completion request failed: {e}") from e

            try:
                check_content_safety(response)
            except ContentSafetyError as e:
                logger.warning(f"Completion blocked: {e.message}")
                raise CompletionUnavailableError(e.message, e.details) from e

            text = response_text(response)
            if not text.strip():
                logger.error("Empty completion response")
                raise CompletionUnavailableError("Completion returned empty response")
            return text

        raise CompletionUnavailableError("Completion rate limit retries exhausted")


# Global singleton instance
_completion_client: Optional[CompletionClient] = None


def get_completion_client() -> CompletionClient:
    """Get global CompletionClient instance"""
    global _completion_client
    if _completion_client is None:
        _completion_client = CompletionClient()
    return _completion_client
