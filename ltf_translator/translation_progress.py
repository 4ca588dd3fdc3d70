import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

import tiktoken

from ltf_translator.ltf_parser import Entry

# Observed throughput of the default 50x8 schedule, used until a session has
# measured its own rate.
DEFAULT_SECONDS_PER_ENTRY = 0.0075

# Prompt overhead of one request and expected growth of Indonesian output.
PROMPT_OVERHEAD_TOKENS = 50
OUTPUT_TOKEN_FACTOR = 1.15


@dataclass
class TranslationProgress:
    """Progress counters of one translation session."""
    total: int = 0
    completed: int = 0
    current: str = ''
    started_at: float = field(default_factory=time.monotonic)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.completed)

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return min(1.0, self.completed / self.total)

    def advance(self, count: int, current: str = '') -> None:
        self.completed = min(self.total, self.completed + count)
        if current:
            self.current = current

    def elapsed_seconds(self) -> float:
        return max(0.0, self.clock() - self.started_at)

    def entries_per_minute(self) -> float:
        elapsed = self.elapsed_seconds()
        if self.completed == 0 or elapsed <= 0:
            return 0.0
        return self.completed / elapsed * 60

    def eta_seconds(self) -> float:
        """Seconds until the remaining entries are done, at the measured rate if there is one."""
        rate = self.entries_per_minute()
        if rate > 0:
            return self.remaining / rate * 60
        return estimate_duration(self.remaining)


def estimate_duration(remaining_entries: int, seconds_per_entry: float = DEFAULT_SECONDS_PER_ENTRY) -> float:
    return remaining_entries * seconds_per_entry


def format_duration(total_seconds: float) -> str:
    """Format a duration as ``1h 5m``, ``3m 12s`` or ``40s``."""
    total_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def count_tokens(text: str, model_name: str = 'gpt-4o-mini') -> int:
    """Count the number of tokens in ``text`` for ``model_name``.

    ``tiktoken.encoding_for_model`` may need to download model data, which is
    not always possible (e.g. in CI). If obtaining the encoding for the
    requested model fails, the function falls back to ``gpt2`` which ships
    with ``tiktoken``. As a last resort, a simple whitespace split is used.
    """

    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            encoding = tiktoken.get_encoding("gpt2")
        except Exception:
            return len(text.split())

    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def estimate_tokens(entries: Iterable[Entry], model_name: str = 'gpt-4o-mini') -> int:
    """
    Estimate the tokens needed to translate every untranslated entry.

    Args:
        entries: The entries of the document.
        model_name: The model whose tokenizer is used for counting.

    Returns:
        int: Input plus expected output tokens plus per-request prompt overhead.
    """
    input_tokens = 0
    request_count = 0
    for entry in entries:
        if not entry.is_untranslated:
            continue
        input_tokens += count_tokens(entry.source, model_name)
        request_count += 1
    output_tokens = int(input_tokens * OUTPUT_TOKEN_FACTOR + 0.5)
    return input_tokens + output_tokens + request_count * PROMPT_OVERHEAD_TOKENS
