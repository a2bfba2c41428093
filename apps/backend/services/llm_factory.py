"""
LexFill - LLM Factory
=====================
Async client for OpenAI-compatible chat completion APIs with structured
output and tool calling support.
"""

import json
import time
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import Settings, get_settings
from exceptions import LLMBusyError, LLMServiceError, LLMValidationError
from logging_config import get_logger
from metrics import llm_failures_total, llm_request_duration_seconds, llm_requests_total
from schemas import PlaceholderExtraction

logger = get_logger(__name__)

# Type variable for Pydantic model generics
T = TypeVar("T", bound=BaseModel)

MAX_RETRY_ATTEMPTS = 5


def _strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` block, if any."""
    clean_text = (text or "").strip()
    if clean_text.startswith("```json"):
        clean_text = clean_text[7:]
    elif clean_text.startswith("```"):
        clean_text = clean_text[3:]
    if clean_text.endswith("```"):
        clean_text = clean_text[:-3]
    return clean_text.strip()


class LLMService:
    """
    Async client for OpenAI-compatible API servers.

    Features:
    - Structured output validated against Pydantic models
    - Tool calling for the document agent
    - Automatic retry with exponential backoff when the server is busy

    Example:
        ```python
        async with LLMService() as llm:
            extraction = await llm.extract_placeholders(text, "safe.docx", doc_id)
        ```
    """

    EXTRACTION_SYSTEM_PROMPT = """You parse legal document templates.

Differentiate between the template text and the dynamic placeholders that need to be filled out by a lawyer.
Placeholders can be marked with {{{{}}}}, [], _____, or other patterns, or they might be implicit fields.
For example, "{{{{Company Name}}}}" or "[Company Name]" or "Company Name: ______" are all valid placeholders.

For each placeholder, provide:
- label: A clear, human-readable label. Reuse the wording of the document where possible.
- description: What information is needed and why

List each distinct placeholder once, in the order it first appears.
Generate a title (usually related to the file name or the header of the document) and a succinct
description of the document based on its content.

Output MUST be valid JSON adhering to this exact schema:
{schema}

Return ONLY the JSON object, no markdown formatting or explanations."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = base_url or self.settings.llm_base_url
        self.model = model or self.settings.llm_model
        self.api_key = api_key or self.settings.llm_api_key
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.settings.llm_timeout_seconds, connect=10.0),
                headers=headers,
            )
        return self._client

    @retry(
        retry=retry_if_exception_type(LLMBusyError),
        stop=stop_after_attempt(MAX_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=2, min=1, max=30),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "LLM busy, retrying",
            sleep_seconds=retry_state.next_action.sleep,
            attempt=retry_state.attempt_number,
            max_attempts=MAX_RETRY_ATTEMPTS,
        ),
    )
    async def _chat_completion(self, request_body: Dict[str, Any], kind: str) -> Dict[str, Any]:
        """
        POST /chat/completions and return the first choice's message.

        Raises:
            LLMBusyError: Server overloaded (will retry)
            LLMServiceError: Other server or connection errors
        """
        start_time = time.perf_counter()
        client = self._get_client()
        llm_requests_total.labels(kind=kind).inc()

        try:
            response = await client.post("/chat/completions", json=request_body)

            if response.status_code == 503:
                raise LLMBusyError("LLM server is busy", model=self.model)

            response.raise_for_status()
            data = response.json()
            message = data["choices"][0]["message"]
            usage = data.get("usage", {})

        except LLMBusyError:
            llm_failures_total.labels(kind=kind).inc()
            raise
        except httpx.HTTPStatusError as e:
            llm_failures_total.labels(kind=kind).inc()
            logger.error("LLM request failed", status_code=e.response.status_code, model=self.model)
            raise LLMServiceError(f"LLM request failed: {e}", model=self.model, original_error=e) from e
        except httpx.RequestError as e:
            llm_failures_total.labels(kind=kind).inc()
            logger.error("LLM connection error", error=str(e), model=self.model)
            raise LLMServiceError(f"LLM connection error: {e}", model=self.model, original_error=e) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            llm_failures_total.labels(kind=kind).inc()
            raise LLMServiceError(f"Malformed LLM response: {e}", model=self.model, original_error=e) from e

        latency = time.perf_counter() - start_time
        llm_request_duration_seconds.observe(latency)
        logger.info(
            "LLM completion finished",
            kind=kind,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            latency_ms=round(latency * 1000, 2),
            model=self.model,
        )
        return message

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 2048,
        temperature: float = 0.1,
        json_mode: bool = False,
    ) -> str:
        """
        Generate a text completion.

        Args:
            prompt: User prompt
            system_prompt: Optional system prompt
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (lower = more deterministic)
            json_mode: Force JSON output format
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request_body: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }
        if json_mode:
            request_body["response_format"] = {"type": "json_object"}

        message = await self._chat_completion(request_body, kind="generate")
        return message.get("content") or ""

    async def generate_structured(
        self,
        prompt: str,
        pydantic_model: Type[T],
        system_prompt: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> T:
        """
        Generate output validated against a Pydantic model.

        The JSON schema is injected into the system prompt (`{schema}`).

        Raises:
            LLMValidationError: Response is not valid JSON or fails validation
        """
        schema_str = json.dumps(pydantic_model.model_json_schema(), indent=2)
        if system_prompt:
            full_system_prompt = system_prompt.format(schema=schema_str)
        else:
            full_system_prompt = (
                "You are a data extraction engine. "
                f"Output MUST be valid JSON adhering to this schema:\n{schema_str}\n"
                "Return ONLY the JSON object, no other text."
            )

        generated_text = await self.generate(
            prompt=prompt,
            system_prompt=full_system_prompt,
            max_tokens=max_tokens,
            temperature=0.1,
            json_mode=True,
        )

        try:
            parsed = json.loads(_strip_code_fence(generated_text))
            return pydantic_model.model_validate(parsed)
        except json.JSONDecodeError as e:
            logger.error("LLM returned invalid JSON", error=str(e), response=generated_text[:500])
            raise LLMValidationError(f"Invalid JSON from LLM: {e}", model=self.model, original_error=e) from e
        except PydanticValidationError as e:
            logger.error("Pydantic validation failed", error=str(e))
            raise LLMValidationError(f"Schema validation failed: {e}", model=self.model, original_error=e) from e

    async def complete_with_tools(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 2048,
    ) -> Dict[str, Any]:
        """
        One chat completion step that may request tool calls.

        Returns:
            The assistant message: {"role", "content", "tool_calls"?}
        """
        request_messages = []
        if system_prompt:
            request_messages.append({"role": "system", "content": system_prompt})
        request_messages.extend(messages)

        request_body: Dict[str, Any] = {
            "model": self.model,
            "messages": request_messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }
        if tools:
            request_body["tools"] = tools
            request_body["tool_choice"] = "auto"

        message = await self._chat_completion(request_body, kind="tools")
        result = {"role": "assistant", "content": message.get("content")}
        if message.get("tool_calls"):
            result["tool_calls"] = message["tool_calls"]
        return result

    async def extract_placeholders(
        self,
        raw_text: str,
        file_name: Optional[str],
        document_id: Any,
    ) -> PlaceholderExtraction:
        """
        Find the placeholders of a legal document template.

        Only the first `extraction_max_chars` characters are sent.
        """
        max_chars = self.settings.extraction_max_chars
        text = raw_text if len(raw_text) <= max_chars else raw_text[:max_chars]

        prompt = f"""Parse this legal document.
The file name is "{file_name or 'Untitled'}".
The document id is {document_id}.

DOCUMENT TEXT:
{text}"""

        result = await self.generate_structured(
            prompt=prompt,
            pydantic_model=PlaceholderExtraction,
            system_prompt=self.EXTRACTION_SYSTEM_PROMPT,
            max_tokens=4096,
        )

        logger.info(
            "Placeholder extraction complete",
            document_id=str(document_id),
            placeholder_count=result.placeholder_count,
            truncated=len(raw_text) > max_chars,
        )
        return result


def get_llm_service(settings: Optional[Settings] = None) -> LLMService:
    """Create an LLM service from the application settings."""
    return LLMService(settings=settings)
