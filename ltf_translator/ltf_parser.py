import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE_NAME = "Bahasa Indonesia"

# Number of lines scanned between two yields of the async parser.
PARSE_YIELD_EVERY = 1000

KEY_LINE_PATTERN = re.compile(r'^(KEY-[^:]+):\s*(.*)$')
TARGET_LINE_PATTERN = re.compile(r'^STR-1:\s*(.*)$')
LANGNAME_LINE_PATTERN = re.compile(r'^LANGNAME:\s*(.*)$')
COMMENT_SPAN_PATTERN = re.compile(r'\[COMMENT:\s*(.*?)\]')


@dataclass
class Entry:
    """One key/source/target translation unit of an .ltf file."""
    key: str
    source: str
    target: str = ''
    comment: Optional[str] = None

    @property
    def is_untranslated(self) -> bool:
        return bool(self.source) and not self.target.strip()

    def as_tuple(self) -> Tuple[str, str, Optional[str], str]:
        return self.key, self.source, self.comment, self.target


@dataclass
class ParseReport:
    """Lines the lenient parser skipped or dropped, by category."""
    unmatched_lines: List[int] = field(default_factory=list)
    unterminated_keys: List[str] = field(default_factory=list)
    duplicate_keys: List[str] = field(default_factory=list)
    language_name: Optional[str] = None

    @property
    def has_problems(self) -> bool:
        return bool(self.unterminated_keys or self.duplicate_keys)


def split_comment(source_text: str) -> Tuple[str, Optional[str]]:
    """
    Split an inline ``[COMMENT: ...]`` annotation out of a source text.

    Only the last annotation is split out; :func:`join_comment` appends it at
    the end again, so earlier annotations stay in the source and keep their
    order. The text before and after the annotation is joined with a single
    space.

    Args:
        source_text: The raw value of a key line.

    Returns:
        The source text without the annotation and the annotation body (or None).
    """
    matches = list(COMMENT_SPAN_PATTERN.finditer(source_text))
    if not matches:
        return source_text, None
    match = matches[-1]
    before = source_text[:match.start()].rstrip()
    after = source_text[match.end():].lstrip()
    if before and after:
        source = f"{before} {after}"
    else:
        source = before or after
    return source, match.group(1).strip()


def join_comment(source: str, comment: Optional[str]) -> str:
    """Re-inline a comment annotation at the end of the source text."""
    if comment is None:
        return source
    if not source:
        return f"[COMMENT: {comment}]"
    return f"{source} [COMMENT: {comment}]"


class _LtfLineScanner:
    """Line-by-line state machine shared by the sync and async parsers."""

    def __init__(self):
        self.entries: List[Entry] = []
        self.report = ParseReport()
        self._seen_keys = set()
        self._open_key: Optional[str] = None
        self._open_source = ''
        self._open_comment: Optional[str] = None

    def feed(self, line_number: int, raw_line: str) -> None:
        line = raw_line.strip()
        if not line:
            return

        key_match = KEY_LINE_PATTERN.match(line)
        if key_match:
            if self._open_key is not None:
                self.report.unterminated_keys.append(self._open_key)
            self._open_key = key_match.group(1).strip()
            self._open_source, self._open_comment = split_comment(key_match.group(2).strip())
            return

        target_match = TARGET_LINE_PATTERN.match(line)
        if target_match and self._open_key is not None:
            self._close_entry(target_match.group(1))
            return

        langname_match = LANGNAME_LINE_PATTERN.match(line)
        if langname_match and self.report.language_name is None:
            self.report.language_name = langname_match.group(1).strip()
            return

        self.report.unmatched_lines.append(line_number)

    def _close_entry(self, target: str) -> None:
        key = self._open_key
        if key in self._seen_keys:
            self.report.duplicate_keys.append(key)
        else:
            self._seen_keys.add(key)
            self.entries.append(Entry(
                key=key,
                source=self._open_source,
                target=target,
                comment=self._open_comment
            ))
        self._open_key = None
        self._open_source = ''
        self._open_comment = None

    def finish(self) -> Tuple[List[Entry], ParseReport]:
        if self._open_key is not None:
            self.report.unterminated_keys.append(self._open_key)
            self._open_key = None
        _log_parse_report(self.report, len(self.entries))
        return self.entries, self.report


def _log_parse_report(report: ParseReport, entry_count: int) -> None:
    logger.debug("Parsed %d entries (%d unmatched lines skipped).", entry_count, len(report.unmatched_lines))
    if report.unterminated_keys:
        logger.warning(
            "Dropped %d unterminated entr%s without a STR-1 line: %s",
            len(report.unterminated_keys),
            "y" if len(report.unterminated_keys) == 1 else "ies",
            ", ".join(report.unterminated_keys[:10])
        )
    if report.duplicate_keys:
        logger.warning(
            "Ignored %d duplicate key(s), first occurrence kept: %s",
            len(report.duplicate_keys),
            ", ".join(report.duplicate_keys[:10])
        )


def _iter_lines(raw_text: str) -> Iterator[Tuple[int, str]]:
    return enumerate(raw_text.split('\n'), 1)


def parse_ltf_text_with_report(raw_text: str) -> Tuple[List[Entry], ParseReport]:
    """
    Parse the content of an .ltf file.

    Malformed lines are skipped and unterminated entries dropped; neither is an
    error. The returned report lists what was skipped.

    Args:
        raw_text: The full file content.

    Returns:
        Tuple[List[Entry], ParseReport]: The entries in file order and the parse report.
    """
    scanner = _LtfLineScanner()
    for line_number, line in _iter_lines(raw_text):
        scanner.feed(line_number, line)
    return scanner.finish()


def parse_ltf_text(raw_text: str) -> List[Entry]:
    """Parse the content of an .ltf file into its entries."""
    entries, _ = parse_ltf_text_with_report(raw_text)
    return entries


async def parse_ltf_text_async(
        raw_text: str,
        yield_every: int = PARSE_YIELD_EVERY
) -> Tuple[List[Entry], ParseReport]:
    """
    Parse the content of an .ltf file without monopolizing the event loop.

    Control is handed back to the loop every ``yield_every`` lines. The result
    is identical to :func:`parse_ltf_text_with_report`.
    """
    if yield_every < 1:
        raise ValueError("yield_every must be a positive integer.")
    scanner = _LtfLineScanner()
    for line_number, line in _iter_lines(raw_text):
        scanner.feed(line_number, line)
        if line_number % yield_every == 0:
            await asyncio.sleep(0)
    return scanner.finish()


def serialize_entries(entries: List[Entry], language_name: str = DEFAULT_LANGUAGE_NAME) -> str:
    """
    Serialize entries back into .ltf file content.

    Args:
        entries: The entries in file order.
        language_name: Value written to the ``LANGNAME`` header line.

    Returns:
        str: The file content.
    """
    header = f"LANGNAME: {language_name}\nGENDERS: 0\nBASESTRINGS: 0\n\n"
    blocks = [
        f"{entry.key}: {join_comment(entry.source, entry.comment)}\nSTR-1: {entry.target or ''}\n"
        for entry in entries
    ]
    return header + '\n'.join(blocks)


def read_ltf_file(file_path: str) -> Tuple[List[Entry], ParseReport]:
    """
    Read and parse an .ltf file.

    Args:
        file_path (str): The path to the .ltf file.

    Returns:
        Tuple[List[Entry], ParseReport]: The parsed entries and the parse report.
    """
    return parse_ltf_text_with_report(_read_ltf_content(file_path))


async def read_ltf_file_async(
        file_path: str,
        yield_every: int = PARSE_YIELD_EVERY
) -> Tuple[List[Entry], ParseReport]:
    """Read an .ltf file and parse it with :func:`parse_ltf_text_async`."""
    return await parse_ltf_text_async(_read_ltf_content(file_path), yield_every)


def _read_ltf_content(file_path: str) -> str:
    with open(file_path, 'r', encoding='utf-8') as file:
        content = file.read()
    # Files saved on Windows keep their '\r' until the per-line strip.
    return content.lstrip("\ufeff")


def write_ltf_file(file_path: str, entries: List[Entry], language_name: str = DEFAULT_LANGUAGE_NAME) -> None:
    """Serialize entries and write them to ``file_path`` as UTF-8."""
    with open(file_path, 'w', encoding='utf-8') as file:
        file.write(serialize_entries(entries, language_name))
