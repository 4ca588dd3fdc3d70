import enum
import re
from typing import Dict, Tuple

PlaceholderMap = Dict[str, str]

# Non-nested spans; the game engine resolves these at runtime so they must
# reach the translated text byte for byte.
BRACKET_SPAN_PATTERN = re.compile(r'\[[^\]]*?\]')
BRACE_SPAN_PATTERN = re.compile(r'\{[^}]*?\}')

ESCAPED_NEWLINE = '\\n'
EDGE_ESCAPED_NEWLINES_PATTERN = re.compile(r'^(?:\\n)+|(?:\\n)+$')
LONG_HORIZONTAL_WHITESPACE_PATTERN = re.compile(r'[ \t]{3,}')
LONG_SPACE_RUN_PATTERN = re.compile(r' {3,}')
ASCII_ALNUM_PATTERN = re.compile(r'[A-Za-z0-9]')


class NewlineMode(enum.Enum):
    """How escaped ``\\n`` literals inside a source text are sent for translation."""
    SPACE = 'space'
    PRESERVE = 'preserve'

    @classmethod
    def from_config(cls, value: str) -> 'NewlineMode':
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(
                f"Unknown newline mode '{value}'. Expected one of: {', '.join(m.value for m in cls)}"
            ) from None


class _TokenFactory:
    """Hands out ``__<TAG>_<n>__`` tokens that do not already occur in the text."""

    def __init__(self, text: str):
        self._text = text
        self._counter = 0

    def next_token(self, tag: str) -> str:
        while True:
            token = f"__{tag}_{self._counter}__"
            self._counter += 1
            if token not in self._text:
                return token


def _needs_space(char: str) -> bool:
    return bool(char) and bool(ASCII_ALNUM_PATTERN.fullmatch(char))


def _replace_spans(text: str, pattern: re.Pattern, tag: str, tokens: _TokenFactory,
                   placeholder_map: PlaceholderMap) -> str:
    def replace_span(match: re.Match) -> str:
        token = tokens.next_token(tag)
        placeholder_map[token] = match.group(0)
        source = match.string
        before_char = source[match.start() - 1] if match.start() > 0 else ''
        after_char = source[match.end()] if match.end() < len(source) else ''
        return (' ' if _needs_space(before_char) else '') + token + (' ' if _needs_space(after_char) else '')

    return pattern.sub(replace_span, text)


def sanitize(text: str, newline_mode: NewlineMode = NewlineMode.SPACE) -> Tuple[str, PlaceholderMap]:
    """
    Replace non-translatable ``[...]`` and ``{...}`` spans with unique tokens.

    A space is inserted between a token and a neighbouring letter or digit so
    the token is not glued to a word; no space is added next to punctuation or
    whitespace. Escaped newline literals are turned into spaces or kept as is
    depending on ``newline_mode``.

    Args:
        text: The source text of one entry.
        newline_mode: The newline dialect used for the whole file.

    Returns:
        Tuple[str, PlaceholderMap]: The cleaned text and the token mapping.
    """
    if not isinstance(text, str):
        raise ValueError("Input text must be a string.")

    placeholder_map: PlaceholderMap = {}
    tokens = _TokenFactory(text)

    cleaned = EDGE_ESCAPED_NEWLINES_PATTERN.sub('', text)
    cleaned = _replace_spans(cleaned, BRACKET_SPAN_PATTERN, 'BRACKET', tokens, placeholder_map)
    cleaned = _replace_spans(cleaned, BRACE_SPAN_PATTERN, 'BRACE', tokens, placeholder_map)

    if newline_mode is NewlineMode.SPACE:
        cleaned = cleaned.replace(ESCAPED_NEWLINE, ' ')

    cleaned = LONG_HORIZONTAL_WHITESPACE_PATTERN.sub(' ', cleaned).strip()
    return cleaned, placeholder_map


def restore(translated_text: str, placeholder_map: PlaceholderMap) -> str:
    """
    Put the original spans back in place of their tokens.

    Tokens missing from ``translated_text`` are left unrestored; a truncated
    response is not an error.

    Args:
        translated_text: The text returned by the completion service.
        placeholder_map: The mapping produced by :func:`sanitize`.

    Returns:
        str: The text with placeholders restored.
    """
    restored = translated_text
    # A brace span captured after the bracket pass may hold bracket tokens,
    # so later tokens are expanded first.
    for token, original in reversed(list(placeholder_map.items())):
        restored = restored.replace(token, original)
    return LONG_SPACE_RUN_PATTERN.sub(' ', restored).strip()


def clean_translated_text(translated_text: str, original_text: str) -> str:
    """
    Cleans the translated text by removing wrapping quotes or square brackets
    the completion service added around its answer.

    Args:
        translated_text (str): The translated text.
        original_text (str): The text that was sent for translation.

    Returns:
        str: The cleaned translated text.
    """
    translated_text = translated_text.strip()
    for opening, closing in (('"', '"'), ('[', ']')):
        if (len(translated_text) >= 2
                and translated_text.startswith(opening) and translated_text.endswith(closing)
                and not (original_text.startswith(opening) and original_text.endswith(closing))):
            translated_text = translated_text[1:-1].strip()
    return translated_text
