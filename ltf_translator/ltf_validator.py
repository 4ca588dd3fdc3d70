from typing import List
import re
from collections import Counter

from ltf_translator.ltf_parser import ParseReport

# Same span families the sanitizer protects.
PLACEHOLDER_SPAN_PATTERN = re.compile(r'\[[^\]]*?\]|\{[^}]*?\}')


def check_placeholder_parity(source_text: str, target_text: str) -> bool:
    """
    Checks if the placeholders of a source text all survive in its translation.
    Placeholders are the ``[...]`` and ``{...}`` spans, e.g. ``[%num#1]``.
    This function allows for reordering of placeholders.

    Args:
        source_text: The source string.
        target_text: The translated string.

    Returns:
        True if both strings contain the same placeholders, False otherwise.
    """
    source_placeholders = Counter(PLACEHOLDER_SPAN_PATTERN.findall(source_text))
    target_placeholders = Counter(PLACEHOLDER_SPAN_PATTERN.findall(target_text))
    return source_placeholders == target_placeholders


def describe_parse_report(report: ParseReport) -> List[str]:
    """
    Turn a parse report into human readable warnings.

    Skipped header and blank lines are expected and not reported.
    """
    messages = []
    for key in report.unterminated_keys:
        messages.append(f"Entry '{key}' has no STR-1 line and was dropped.")
    for key in report.duplicate_keys:
        messages.append(f"Duplicate key '{key}' was ignored; the first occurrence is kept.")
    return messages


def check_encoding_and_mojibake(file_path: str) -> List[str]:
    """
    Checks a file for UTF-8 encoding and common mojibake patterns.

    Args:
        file_path: The path to the file to check.

    Returns:
        A list of string error messages. An empty list means the file is valid.
    """
    errors = []

    # 1. Check for valid UTF-8 encoding
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()
    except UnicodeDecodeError:
        errors.append(f"File '{file_path}' is not a valid UTF-8 file.")
        return errors  # Stop further checks if the file can't be read
    except OSError as e:
        errors.append(f"Could not read file '{file_path}'. Reason: {e}")
        return errors

    # 2. 'Ã' followed by a byte in 0x80-0xFF is UTF-8 text that was decoded as latin-1 or cp1252.
    mojibake_pattern = re.compile(r'Ã[\x80-\xff]')
    if mojibake_pattern.search(content):
        errors.append(f"Potential mojibake detected in '{file_path}'. Found patterns like 'Ã¼', 'Ã¤', etc.")

    # 3. Check for the Unicode replacement character
    if '\uFFFD' in content:
        errors.append(f"File '{file_path}' contains the Unicode replacement character (\uFFFD), "
                      f"indicating a previous encoding/decoding error.")

    return errors
