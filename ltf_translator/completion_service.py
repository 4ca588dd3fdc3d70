import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

import jsonschema
from aiolimiter import AsyncLimiter
from openai import (
    APIConnectionError,
    APIStatusError,
    RateLimitError,
    APITimeoutError,
    OpenAIError
)
from openai import AsyncOpenAI
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

logger = logging.getLogger(__name__)

# The service truncates larger batch requests to this many texts.
MAX_TEXTS_PER_REQUEST = 100

SINGLE_REQUEST_SCHEMA = {
    "type": "object",
    "properties": {"text": {"type": "string", "minLength": 1}},
    "required": ["text"],
}

BATCH_REQUEST_SCHEMA = {
    "type": "object",
    "properties": {
        "texts": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 1,
            "maxItems": MAX_TEXTS_PER_REQUEST,
        }
    },
    "required": ["texts"],
}

ERROR_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {"error": {"type": "string"}, "details": {"type": "string"}},
    "required": ["error"],
}

SINGLE_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {"translatedText": {"type": "string"}},
    "required": ["translatedText"],
}

BATCH_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "translatedTexts": {"type": "array", "items": {"type": "string"}},
        "processedCount": {"type": "integer", "minimum": 0},
    },
    "required": ["translatedTexts", "processedCount"],
}

NUMBERED_LINE_PREFIX_PATTERN = re.compile(r'^\d+\.\s*')

DEFAULT_SYSTEM_PROMPT = (
    "You are a Football Manager translator. Translate English into natural {target_language} (semi-formal). "
    "Use natural and easy-to-understand {target_language} language. Examples: "
    "'We dominated the game' → 'Kita benar-benar menguasai pertandingan.', "
    "'Board expects a top-half finish' → 'Manajemen berharap kita bisa finis di papan atas.', "
    "'Transfer budget adjusted' → 'Dana transfer sudah disesuaikan.' "
    "Keep placeholder tokens such as __BRACKET_0__ or __BRACE_1__ and placeholders like [%number#1] unchanged. "
    "Avoid slang like 'nguasain' or 'udah', and avoid overly formal language."
)

SINGLE_TEXT_INSTRUCTIONS = (
    " IMPORTANT: Return ONLY the translated text without quotes, explanations, or additional formatting."
)

BATCH_TEXT_INSTRUCTIONS = (
    " IMPORTANT: You will receive numbered texts. Return ONLY the translated texts in the same numbered "
    "format, one per line. Do not add explanations or additional formatting."
)


class CompletionServiceError(Exception):
    """Raised when the completion service reports or causes a failed request."""


class CompletionService:
    """
    Request/response contract of the external text-completion service.

    ``complete`` takes ``{"text": str}`` or ``{"texts": [str, ...]}`` and returns
    ``{"translatedText": str}``, ``{"translatedTexts": [...], "processedCount": int}``
    or ``{"error": str}``.
    """

    async def complete(self, request: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


def _validate(instance: Any, schema: Dict[str, Any], what: str) -> None:
    try:
        jsonschema.validate(instance=instance, schema=schema)
    except jsonschema.ValidationError as schema_exc:
        raise CompletionServiceError(f"Malformed {what}: {schema_exc.message}") from schema_exc


def _raise_for_error(response: Any) -> None:
    if isinstance(response, dict) and "error" in response:
        _validate(response, ERROR_RESPONSE_SCHEMA, "error response")
        details = response.get("details")
        message = response["error"] if not details else f"{response['error']}: {details}"
        raise CompletionServiceError(message)


async def request_translation(service: CompletionService, text: str) -> str:
    """
    Send one text to the completion service.

    Raises:
        CompletionServiceError: If the service reports an error or the response is malformed.
    """
    request = {"text": text}
    _validate(request, SINGLE_REQUEST_SCHEMA, "request")
    response = await service.complete(request)
    _raise_for_error(response)
    _validate(response, SINGLE_RESPONSE_SCHEMA, "response")
    return response["translatedText"]


async def request_batch_translation(service: CompletionService, texts: List[str]) -> List[str]:
    """
    Send up to ``MAX_TEXTS_PER_REQUEST`` texts in one request.

    Results pair with the request strictly by position, so a response with a
    different number of items than was sent is rejected instead of indexed.

    Raises:
        CompletionServiceError: On an error response, a malformed response or a length mismatch.
    """
    request = {"texts": list(texts)}
    _validate(request, BATCH_REQUEST_SCHEMA, "request")
    response = await service.complete(request)
    _raise_for_error(response)
    _validate(response, BATCH_RESPONSE_SCHEMA, "response")

    translated_texts = response["translatedTexts"]
    if response["processedCount"] != len(texts) or len(translated_texts) != len(texts):
        raise CompletionServiceError(
            f"Length mismatch: sent {len(texts)}, service processed {response['processedCount']} "
            f"and returned {len(translated_texts)}."
        )
    return translated_texts


def parse_numbered_lines(content: str) -> List[str]:
    """Split a numbered-list answer ("1. foo\\n2. bar") into its items."""
    return [
        NUMBERED_LINE_PREFIX_PATTERN.sub('', line).strip()
        for line in content.split('\n')
        if line.strip()
    ]


class OpenAICompletionService(CompletionService):
    """Implements the completion contract with the OpenAI chat completions API."""

    def __init__(
            self,
            client: AsyncOpenAI,
            model_name: str = 'gpt-4o-mini',
            target_language: str = 'Indonesian',
            temperature: float = 0.3,
            max_concurrent_api_calls: int = 16,
            requests_per_minute: Optional[int] = None,
            request_timeout: float = 60.0
    ):
        self.client = client
        self.model_name = model_name
        self.temperature = temperature
        self.request_timeout = request_timeout
        self.system_prompt = DEFAULT_SYSTEM_PROMPT.format(target_language=target_language)
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent_api_calls))
        self._rate_limiter = AsyncLimiter(requests_per_minute, 60) if requests_per_minute else None

    async def complete(self, request: Dict[str, Any]) -> Dict[str, Any]:
        try:
            if "texts" in request:
                texts = request["texts"]
                if not isinstance(texts, list) or not texts:
                    return {"error": "Texts array cannot be empty"}
                return await self._complete_batch(texts[:MAX_TEXTS_PER_REQUEST])
            text = request.get("text")
            if not text:
                return {"error": "Text or texts array is required"}
            return await self._complete_single(text)
        except (RateLimitError, APITimeoutError, APIConnectionError, APIStatusError, OpenAIError) as api_exc:
            logger.error(f"API error occurred: {api_exc.__class__.__name__} - {api_exc}")
            return {"error": "Translation failed", "details": str(api_exc)}

    async def _create_completion(self, system_prompt: str, user_content: str, max_tokens: int) -> str:
        if self._rate_limiter is not None:
            async with self._semaphore, self._rate_limiter:
                response = await self._send(system_prompt, user_content, max_tokens)
        else:
            async with self._semaphore:
                response = await self._send(system_prompt, user_content, max_tokens)
        return (response.choices[0].message.content or '').strip()

    async def _send(self, system_prompt: str, user_content: str, max_tokens: int):
        return await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                ChatCompletionSystemMessageParam(role="system", content=system_prompt),
                ChatCompletionUserMessageParam(role="user", content=user_content)
            ],
            temperature=self.temperature,
            max_tokens=max_tokens,
            timeout=self.request_timeout,
        )

    async def _complete_single(self, text: str) -> Dict[str, Any]:
        translation = await self._create_completion(
            self.system_prompt + SINGLE_TEXT_INSTRUCTIONS, text, max_tokens=1000
        )
        return {"translatedText": translation}

    async def _complete_batch(self, texts: List[str]) -> Dict[str, Any]:
        batch_content = '\n'.join(f"{index + 1}. {text}" for index, text in enumerate(texts))
        content = await self._create_completion(
            self.system_prompt + BATCH_TEXT_INSTRUCTIONS, batch_content, max_tokens=4000
        )
        return {"translatedTexts": parse_numbered_lines(content), "processedCount": len(texts)}
