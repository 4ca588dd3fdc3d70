import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

# --- Python Version Check ---
if sys.version_info < (3, 11):
    sys.stderr.write("Error: This script requires Python 3.11 or newer.\n")
    sys.stderr.write(f"You are running Python {sys.version.split()[0]}.\n")
    sys.exit(1)
# --- End Version Check ---

from tqdm import tqdm

from ltf_translator.app_config import load_app_config
from ltf_translator.completion_service import CompletionService, OpenAICompletionService
from ltf_translator.ltf_parser import read_ltf_file_async, write_ltf_file
from ltf_translator.ltf_validator import check_encoding_and_mojibake, describe_parse_report
from ltf_translator.translation_progress import estimate_duration, estimate_tokens, format_duration
from ltf_translator.translation_scheduler import (
    EntryStore,
    TranslationSession,
    Translator,
    TranslatorSettings
)

logger = logging.getLogger("ltf_translator.cli")

# Status notes printed at the end of a session; the rest only go to the log file.
MAX_NOTES_SHOWN = 20


class InputFileError(Exception):
    """The input .ltf file cannot be used."""


def default_output_path(input_path: str) -> str:
    """``match.ltf`` becomes ``match_translated.ltf`` next to the input."""
    root, ext = os.path.splitext(input_path)
    return f"{root}_translated{ext or '.ltf'}"


async def load_entry_store(input_path: str) -> EntryStore:
    """
    Validate, read and parse an .ltf file.

    Raises:
        InputFileError: If the file is missing, not UTF-8 or unreadable.
    """
    if not os.path.isfile(input_path):
        raise InputFileError(f"Input file '{input_path}' does not exist.")
    encoding_errors = check_encoding_and_mojibake(input_path)
    if any("not a valid UTF-8" in error or "Could not read" in error for error in encoding_errors):
        raise InputFileError("; ".join(encoding_errors))
    for warning in encoding_errors:
        logger.warning(warning)

    entries, report = await read_ltf_file_async(input_path)
    for message in describe_parse_report(report):
        logger.warning(message)
    logger.info(f"Loaded {len(entries)} entries from '{input_path}'.")
    return EntryStore(entries)


def _make_progress_bar(translator: Translator, desc: str) -> tqdm:
    bar = tqdm(total=0, desc=desc, unit="entry")

    def on_progress(session: TranslationSession) -> None:
        progress = session.progress
        bar.total = progress.total
        bar.n = progress.completed
        bar.set_postfix_str(
            f"{progress.entries_per_minute():.1f} entries/min, ETA {format_duration(progress.eta_seconds())}"
        )
        bar.refresh()

    translator.progress_callback = on_progress
    return bar


def _install_cancel_handler(translator: Translator) -> bool:
    """Let the first Ctrl-C request cancellation instead of killing the process."""
    loop = asyncio.get_running_loop()

    def request_cancel() -> None:
        if translator.cancel():
            logger.warning("Cancellation requested; waiting for in-flight translations to finish...")

    try:
        loop.add_signal_handler(signal.SIGINT, request_cancel)
    except (NotImplementedError, RuntimeError):
        return False
    return True


async def translate_document(
        input_path: str,
        output_path: str,
        service: CompletionService,
        settings: TranslatorSettings,
        language_name: str,
        page: Optional[int] = None,
        index: Optional[int] = None,
        show_progress: bool = True
) -> TranslationSession:
    """
    Translate the untranslated entries of one .ltf file and write the result.

    Args:
        input_path: The .ltf file to read.
        output_path: Where the translated file is written.
        service: The completion service.
        settings: Scheduler settings.
        language_name: ``LANGNAME`` written to the output header.
        page: Translate only this 1-based page of ``settings.items_per_page`` entries.
        index: Translate only the entry at this index.
        show_progress: Whether to draw a tqdm progress bar.

    Returns:
        TranslationSession: The settled session.
    """
    store = await load_entry_store(input_path)
    translator = Translator(store, service, settings)
    bar = _make_progress_bar(translator, os.path.basename(input_path)) if show_progress else None
    signal_handler_installed = _install_cancel_handler(translator)
    try:
        if index is not None:
            session = await translator.translate_one(index)
        elif page is not None:
            session = await translator.translate_page(page)
        else:
            session = await translator.translate_all()
    finally:
        if signal_handler_installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        if bar is not None:
            bar.close()

    for note in session.status_notes[:MAX_NOTES_SHOWN]:
        logger.warning(note)
    if len(session.status_notes) > MAX_NOTES_SHOWN:
        logger.warning(f"... and {len(session.status_notes) - MAX_NOTES_SHOWN} more note(s).")

    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
    write_ltf_file(output_path, store.entries, language_name)
    logger.info(f"Translated file saved to '{output_path}'.")
    return session


async def report_dry_run(input_path: str, model_name: str) -> int:
    store = await load_entry_store(input_path)
    remaining = store.untranslated_count()
    logger.info(
        f"[Dry Run] {remaining} of {len(store)} entries need translation, "
        f"~{estimate_tokens(store.entries, model_name)} tokens, "
        f"estimated time {format_duration(estimate_duration(remaining))}."
    )
    return remaining


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fill in missing translations of a Football Manager .ltf language file."
    )
    parser.add_argument("input", help="Path to the .ltf file.")
    parser.add_argument("-o", "--output", help="Output path (default: <input>_translated.ltf).")
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--page", type=int, help="Translate only this 1-based page of entries.")
    scope.add_argument("--index", type=int, help="Translate only the entry at this 0-based index.")
    parser.add_argument("--items-per-page", type=int, help="Page size used with --page.")
    parser.add_argument("--dry-run", action="store_true", default=None,
                        help="Only report what would be translated.")
    parser.add_argument("--no-progress", action="store_true", help="Do not draw a progress bar.")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function to orchestrate the translation of one file.
    """
    args = build_arg_parser().parse_args(argv)
    app_config = load_app_config(dry_run_override=args.dry_run)

    try:
        if app_config.dry_run:
            await report_dry_run(args.input, app_config.model_name)
            return 0

        settings = app_config.translator_settings()
        if args.items_per_page:
            settings.items_per_page = args.items_per_page
        service = OpenAICompletionService(
            app_config.openai_client,
            model_name=app_config.model_name,
            target_language=app_config.target_language,
            temperature=app_config.temperature,
            max_concurrent_api_calls=app_config.max_concurrent_api_calls,
            requests_per_minute=app_config.requests_per_minute
        )
        session = await translate_document(
            args.input,
            args.output or default_output_path(args.input),
            service,
            settings,
            app_config.language_name,
            page=args.page,
            index=args.index,
            show_progress=not args.no_progress
        )
    except InputFileError as input_exc:
        logger.error(str(input_exc))
        return 1

    return 2 if session.cancelled else 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except Exception as main_exc:
        logger.error(f"An unexpected error occurred during execution: {main_exc}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
