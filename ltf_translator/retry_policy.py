import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ltf_translator.completion_service import CompletionService, request_translation
from ltf_translator.placeholder_sanitizer import clean_translated_text
from ltf_translator.rejection_classifier import is_rejection

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 2

DIRECTIVE_TEMPLATE = (
    'TRANSLATE TO {language} ONLY. Do not refuse, do not explain, just translate this text: "{text}"'
)

OUTCOME_TRANSLATED = 'translated'
OUTCOME_REJECTED = 'rejected'
OUTCOME_EMPTY = 'empty'
OUTCOME_ERROR = 'error'


@dataclass
class AttemptRecord:
    """What happened on one call to the completion service."""
    attempt: int
    request_text: str
    outcome: str
    response_text: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RetryResult:
    text: str
    fell_back: bool
    attempts: List[AttemptRecord] = field(default_factory=list)


def build_directive_request(text: str, target_language: str) -> str:
    """Wrap a text in the framing used for attempts after a refusal."""
    return DIRECTIVE_TEMPLATE.format(language=target_language.upper(), text=text)


def _backoff_delay(attempt: int, base_delay: float) -> float:
    return base_delay * (2 ** (attempt - 1)) + random.uniform(0, base_delay)


async def translate_with_retry(
        service: CompletionService,
        text: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        *,
        fallback: Optional[str] = None,
        classifier: Optional[Callable[[str], bool]] = None,
        target_language: str = 'Indonesian',
        on_attempt: Optional[Callable[[AttemptRecord], None]] = None,
        base_delay: float = 0.0
) -> RetryResult:
    """
    Translate one cleaned text, re-prompting when the service refuses.

    Attempt 1 sends the text unchanged; later attempts use a directive framing
    that forbids refusals and explanations. A refusal, an empty answer, an error
    response or a transport exception each consume one attempt. When every
    attempt has failed, ``fallback`` (or ``text`` itself when no fallback is
    given) is returned instead of raising.

    Args:
        service: The completion service.
        text: The sanitized text to translate.
        max_attempts: Total number of calls allowed.
        fallback: Text returned when all attempts fail, normally the unsanitized source.
        classifier: Refusal detector; defaults to :func:`is_rejection`.
        target_language: Language named in the directive framing.
        on_attempt: Called with an :class:`AttemptRecord` after every attempt.
        base_delay: Base for exponential backoff between attempts; 0 disables waiting.

    Returns:
        RetryResult: The final text, whether it is the fallback, and every attempt made.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1.")
    classifier = classifier or is_rejection
    attempts: List[AttemptRecord] = []

    def record(attempt_record: AttemptRecord) -> None:
        attempts.append(attempt_record)
        if on_attempt is not None:
            on_attempt(attempt_record)

    for attempt in range(1, max_attempts + 1):
        request_text = text if attempt == 1 else build_directive_request(text, target_language)
        try:
            response_text = await request_translation(service, request_text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Translation attempt {attempt}/{max_attempts} failed: {exc}")
            record(AttemptRecord(attempt, request_text, OUTCOME_ERROR, error=str(exc)))
        else:
            translated = clean_translated_text(response_text, request_text)
            if not translated:
                logger.info(f"Attempt {attempt}: empty response for \"{text}\"")
                record(AttemptRecord(attempt, request_text, OUTCOME_EMPTY, response_text=response_text))
            elif classifier(translated):
                logger.info(f"Attempt {attempt}: AI rejected translation for \"{text}\"")
                record(AttemptRecord(attempt, request_text, OUTCOME_REJECTED, response_text=response_text))
            else:
                record(AttemptRecord(attempt, request_text, OUTCOME_TRANSLATED, response_text=response_text))
                return RetryResult(text=translated, fell_back=False, attempts=attempts)

        if attempt < max_attempts:
            if base_delay > 0:
                delay = _backoff_delay(attempt, base_delay)
                logger.info(f"Retrying in {delay:.2f} seconds with a more explicit prompt "
                            f"(Attempt {attempt + 1}/{max_attempts})")
                await asyncio.sleep(delay)
            else:
                logger.debug("Retrying with a more explicit prompt...")

    final_text = text if fallback is None else fallback
    logger.warning(f"All {max_attempts} translation attempts failed, using original text: \"{final_text}\"")
    return RetryResult(text=final_text, fell_back=True, attempts=attempts)
