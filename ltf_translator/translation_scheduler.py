"""
Batch/group scheduler that fills in missing translations of an .ltf document.

Untranslated entries are split into fixed-size batches; ``concurrent_batches``
batches run at the same time as one group, and the next group starts only when
the whole group has finished. Results are written by entry index into a working
copy that is published to the :class:`EntryStore` once per group.
"""
import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ltf_translator.completion_service import (
    MAX_TEXTS_PER_REQUEST,
    CompletionService,
    request_batch_translation
)
from ltf_translator.ltf_parser import Entry
from ltf_translator.ltf_validator import check_placeholder_parity
from ltf_translator.placeholder_sanitizer import (
    NewlineMode,
    PlaceholderMap,
    clean_translated_text,
    restore,
    sanitize
)
from ltf_translator.rejection_classifier import is_rejection
from ltf_translator.retry_policy import DEFAULT_MAX_ATTEMPTS, RetryResult, translate_with_retry
from ltf_translator.translation_progress import TranslationProgress

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    CANCELLING = 'cancelling'
    SETTLED = 'settled'


class SessionConflictError(RuntimeError):
    """A translation was requested while another session is still running."""


class EntryLockedError(RuntimeError):
    """An entry was edited while a translation session owns the store."""


class CancellationToken:
    """Cooperative cancellation flag shared by everything one session starts."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled


@dataclass(frozen=True)
class ScheduleSettings:
    batch_size: int
    concurrent_batches: int

    def __post_init__(self):
        if self.batch_size < 1 or self.concurrent_batches < 1:
            raise ValueError("batch_size and concurrent_batches must be positive.")


TRANSLATE_ALL_SCHEDULE = ScheduleSettings(batch_size=50, concurrent_batches=8)
TRANSLATE_PAGE_SCHEDULE = ScheduleSettings(batch_size=40, concurrent_batches=6)
TRANSLATE_ONE_SCHEDULE = ScheduleSettings(batch_size=1, concurrent_batches=1)


@dataclass
class TranslatorSettings:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    newline_mode: NewlineMode = NewlineMode.SPACE
    target_language: str = 'Indonesian'
    translate_all: ScheduleSettings = TRANSLATE_ALL_SCHEDULE
    translate_page: ScheduleSettings = TRANSLATE_PAGE_SCHEDULE
    items_per_page: int = 50
    batch_requests: bool = False
    retry_base_delay: float = 0.0
    classifier: Optional[Callable[[str], bool]] = None


@dataclass
class TranslationTask:
    entry_index: int
    key: str
    source: str
    cleaned_text: str
    placeholder_map: PlaceholderMap


class EntryOutcome(enum.Enum):
    TRANSLATED = 'translated'
    SKIPPED = 'skipped'
    FALLBACK = 'fallback'


@dataclass
class EntryResult:
    index: int
    key: str
    outcome: EntryOutcome
    text: Optional[str] = None


@dataclass
class TranslationSession:
    """One translate-all / translate-subset / translate-one run, from start to settled."""
    scope: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: SessionState = SessionState.IDLE
    token: CancellationToken = field(default_factory=CancellationToken)
    progress: TranslationProgress = field(default_factory=TranslationProgress)
    translated: int = 0
    skipped: int = 0
    fallbacks: int = 0
    not_started: int = 0
    status_notes: List[str] = field(default_factory=list)
    results: Dict[int, EntryResult] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.RUNNING, SessionState.CANCELLING)

    @property
    def cancelled(self) -> bool:
        return self.token.is_cancelled

    def cancel(self) -> bool:
        """Request cancellation; returns False if the session is not running."""
        if self.state is not SessionState.RUNNING:
            return False
        self.state = SessionState.CANCELLING
        self.token.cancel()
        logger.info(f"Cancelling translation session {self.session_id}...")
        return True

    def note(self, message: str) -> None:
        self.status_notes.append(message)

    def record(self, result: EntryResult) -> None:
        self.results[result.index] = result
        if result.outcome is EntryOutcome.TRANSLATED:
            self.translated += 1
        elif result.outcome is EntryOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.fallbacks += 1


class WorkingCopy:
    """Index-addressed writes collected during one group, applied by :meth:`publish`."""

    def __init__(self, store: 'EntryStore'):
        self._store = store
        self._writes: Dict[int, str] = {}

    def set_target(self, index: int, target: str) -> None:
        self._writes[index] = target

    def __len__(self):
        return len(self._writes)

    def publish(self) -> int:
        writes, self._writes = self._writes, {}
        return self._store._apply_writes(writes)


class EntryStore:
    """The entry collection of one open document."""

    def __init__(self, entries: Sequence[Entry]):
        self._entries: List[Entry] = list(entries)
        self._locked = False

    def __len__(self):
        return len(self._entries)

    def __getitem__(self, index: int) -> Entry:
        return self._entries[index]

    @property
    def entries(self) -> List[Entry]:
        """A snapshot of the published entries."""
        return list(self._entries)

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    def untranslated_count(self) -> int:
        return sum(1 for entry in self._entries if entry.is_untranslated)

    def set_target(self, index: int, target: str) -> None:
        """Edit a translation by hand."""
        if self._locked:
            raise EntryLockedError(
                f"Entry {index} cannot be edited while a translation session is running."
            )
        entries = list(self._entries)
        entries[index] = replace(entries[index], target=target)
        self._entries = entries

    def working_copy(self) -> WorkingCopy:
        return WorkingCopy(self)

    def _apply_writes(self, writes: Dict[int, str]) -> int:
        if not writes:
            return 0
        entries = list(self._entries)
        applied = 0
        for index, target in writes.items():
            if entries[index].target.strip():
                logger.warning(f"Entry '{entries[index].key}' already has a translation; scheduler result dropped.")
                continue
            entries[index] = replace(entries[index], target=target)
            applied += 1
        self._entries = entries
        return applied


ProgressCallback = Callable[[TranslationSession], None]


class Translator:
    """Runs translation sessions against one :class:`EntryStore`."""

    def __init__(
            self,
            store: EntryStore,
            service: CompletionService,
            settings: Optional[TranslatorSettings] = None,
            progress_callback: Optional[ProgressCallback] = None
    ):
        self.store = store
        self.service = service
        self.settings = settings or TranslatorSettings()
        self.progress_callback = progress_callback
        self._active_session: Optional[TranslationSession] = None
        self._classifier = self.settings.classifier or is_rejection

    @property
    def active_session(self) -> Optional[TranslationSession]:
        if self._active_session is not None and self._active_session.is_active:
            return self._active_session
        return None

    @property
    def is_translating(self) -> bool:
        return self.active_session is not None

    def cancel(self) -> bool:
        """Cancel the running session, if any."""
        session = self.active_session
        return session.cancel() if session is not None else False

    async def translate_all(self, schedule: Optional[ScheduleSettings] = None) -> TranslationSession:
        """Translate every untranslated entry of the document."""
        session = self._begin('all')
        candidates = self._select_candidates(0, len(self.store))
        return await self._run(session, candidates, schedule or self.settings.translate_all)

    async def translate_subset(
            self,
            start: int,
            stop: int,
            schedule: Optional[ScheduleSettings] = None
    ) -> TranslationSession:
        """Translate the untranslated entries with an index in ``[start, stop)``."""
        if start < 0 or stop < start:
            raise ValueError(f"Invalid entry range [{start}, {stop}).")
        session = self._begin(f'entries {start}-{stop}')
        candidates = self._select_candidates(start, min(stop, len(self.store)))
        return await self._run(session, candidates, schedule or self.settings.translate_page)

    async def translate_page(self, page: int, items_per_page: Optional[int] = None) -> TranslationSession:
        """Translate the untranslated entries of one 1-based page."""
        items_per_page = items_per_page or self.settings.items_per_page
        if page < 1 or items_per_page < 1:
            raise ValueError("page and items_per_page must be positive.")
        start = (page - 1) * items_per_page
        return await self.translate_subset(start, start + items_per_page)

    async def translate_one(self, index: int) -> TranslationSession:
        """Translate a single entry."""
        if not 0 <= index < len(self.store):
            raise IndexError(f"Entry index {index} is out of range.")
        session = self._begin(f'entry {index}')
        candidates = self._select_candidates(index, index + 1)
        if not candidates:
            session.note(f"Entry '{self.store[index].key}' is already translated or has no source text.")
        return await self._run(session, candidates, TRANSLATE_ONE_SCHEDULE)

    def _begin(self, scope: str) -> TranslationSession:
        if self.active_session is not None:
            raise SessionConflictError(
                f"Translation session {self._active_session.session_id} is still "
                f"{self._active_session.state.value}."
            )
        session = TranslationSession(scope=scope)
        session.state = SessionState.RUNNING
        self._active_session = session
        return session

    def _select_candidates(self, start: int, stop: int) -> List[Tuple[int, Entry]]:
        return [
            (index, self.store[index])
            for index in range(start, stop)
            if self.store[index].is_untranslated
        ]

    async def _run(
            self,
            session: TranslationSession,
            candidates: List[Tuple[int, Entry]],
            schedule: ScheduleSettings
    ) -> TranslationSession:
        session.progress = TranslationProgress(total=len(candidates))
        batches = [
            candidates[i:i + schedule.batch_size]
            for i in range(0, len(candidates), schedule.batch_size)
        ]
        group_count = (len(batches) + schedule.concurrent_batches - 1) // schedule.concurrent_batches
        logger.info(
            f"Session {session.session_id} ({session.scope}): {len(candidates)} entries in "
            f"{len(batches)} batch(es) of {schedule.batch_size}, "
            f"{schedule.concurrent_batches} concurrent batch(es) per group."
        )

        working = self.store.working_copy()
        self.store.lock()
        try:
            for group_number in range(1, group_count + 1):
                if session.token.is_cancelled:
                    break
                group_start = (group_number - 1) * schedule.concurrent_batches
                group = batches[group_start:group_start + schedule.concurrent_batches]

                group_results = await asyncio.gather(
                    *(self._run_batch(session, batch, working) for batch in group)
                )
                resolved = [result for batch_results in group_results for result in batch_results]

                working.publish()
                for result in resolved:
                    session.record(result)
                session.progress.advance(len(resolved), current=f"Finished batch group {group_number}/{group_count}")
                logger.info(
                    f"Session {session.session_id}: batch group {group_number}/{group_count} done, "
                    f"{session.progress.completed}/{session.progress.total} entries."
                )
                if self.progress_callback is not None:
                    self.progress_callback(session)
        finally:
            working.publish()
            self.store.unlock()
            session.not_started = session.progress.total - len(session.results)
            session.state = SessionState.SETTLED
            self._log_summary(session)

        return session

    async def _run_batch(
            self,
            session: TranslationSession,
            batch: List[Tuple[int, Entry]],
            working: WorkingCopy
    ) -> List[EntryResult]:
        if self.settings.batch_requests:
            return await self._run_batch_request(session, batch, working)
        results = await asyncio.gather(
            *(self._run_entry(session, index, entry, working) for index, entry in batch)
        )
        return [result for result in results if result is not None]

    def _prepare_task(self, index: int, entry: Entry) -> TranslationTask:
        cleaned_text, placeholder_map = sanitize(entry.source, self.settings.newline_mode)
        return TranslationTask(
            entry_index=index,
            key=entry.key,
            source=entry.source,
            cleaned_text=cleaned_text,
            placeholder_map=placeholder_map
        )

    async def _run_entry(
            self,
            session: TranslationSession,
            index: int,
            entry: Entry,
            working: WorkingCopy
    ) -> Optional[EntryResult]:
        if session.token.is_cancelled:
            return None
        session.progress.current = f"Translating: {entry.key}"
        try:
            task = self._prepare_task(index, entry)
        except Exception as exc:
            return self._fall_back(session, index, entry.key, entry.source, working, exc)
        if not task.cleaned_text:
            return EntryResult(index, entry.key, EntryOutcome.SKIPPED)
        return await self._translate_task(session, task, working)

    async def _translate_task(
            self,
            session: TranslationSession,
            task: TranslationTask,
            working: WorkingCopy
    ) -> EntryResult:
        try:
            retry_result = await translate_with_retry(
                self.service,
                task.cleaned_text,
                self.settings.max_attempts,
                fallback=task.source,
                classifier=self._classifier,
                target_language=self.settings.target_language,
                base_delay=self.settings.retry_base_delay
            )
            return self._resolve(session, task, retry_result, working)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return self._fall_back(session, task.entry_index, task.key, task.source, working, exc)

    def _resolve(
            self,
            session: TranslationSession,
            task: TranslationTask,
            retry_result: RetryResult,
            working: WorkingCopy
    ) -> EntryResult:
        if retry_result.fell_back:
            working.set_target(task.entry_index, task.source)
            session.note(
                f"'{task.key}': no usable translation after {len(retry_result.attempts)} attempt(s); "
                f"source text kept."
            )
            return EntryResult(task.entry_index, task.key, EntryOutcome.FALLBACK, task.source)

        final_translation = restore(retry_result.text, task.placeholder_map)
        if not check_placeholder_parity(task.source, final_translation):
            logger.warning(f"Placeholder mismatch for key '{task.key}': '{final_translation}'")
            session.note(f"'{task.key}': placeholders differ from the source text.")
        logger.debug(f"Translated key '{task.key}': '{task.source}' -> '{final_translation}'")
        working.set_target(task.entry_index, final_translation)
        return EntryResult(task.entry_index, task.key, EntryOutcome.TRANSLATED, final_translation)

    def _fall_back(
            self,
            session: TranslationSession,
            index: int,
            key: str,
            source: str,
            working: WorkingCopy,
            exc: Exception
    ) -> EntryResult:
        logger.error(f"Translation failed for {key}: {exc}", exc_info=True)
        working.set_target(index, source)
        session.note(f"'{key}': translation failed ({exc}); source text kept.")
        return EntryResult(index, key, EntryOutcome.FALLBACK, source)

    async def _run_batch_request(
            self,
            session: TranslationSession,
            batch: List[Tuple[int, Entry]],
            working: WorkingCopy
    ) -> List[EntryResult]:
        """Send the whole batch as one request, retrying leftovers one by one."""
        results: List[EntryResult] = []
        tasks: List[TranslationTask] = []
        for index, entry in batch:
            if session.token.is_cancelled:
                break
            try:
                task = self._prepare_task(index, entry)
            except Exception as exc:
                results.append(self._fall_back(session, index, entry.key, entry.source, working, exc))
                continue
            if task.cleaned_text:
                tasks.append(task)
            else:
                results.append(EntryResult(index, entry.key, EntryOutcome.SKIPPED))

        leftovers: List[TranslationTask] = []
        for chunk_start in range(0, len(tasks), MAX_TEXTS_PER_REQUEST):
            chunk = tasks[chunk_start:chunk_start + MAX_TEXTS_PER_REQUEST]
            try:
                translations = await request_batch_translation(
                    self.service, [task.cleaned_text for task in chunk]
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(f"Batch request for {len(chunk)} entries failed, retrying one by one: {exc}")
                leftovers.extend(chunk)
                continue

            for task, translated in zip(chunk, translations):
                cleaned = clean_translated_text(translated, task.cleaned_text)
                if cleaned and not self._classifier(cleaned):
                    results.append(self._resolve(
                        session, task, RetryResult(text=cleaned, fell_back=False), working
                    ))
                else:
                    leftovers.append(task)

        if leftovers:
            retried = await asyncio.gather(
                *(self._retry_leftover(session, task, working) for task in leftovers)
            )
            results.extend(result for result in retried if result is not None)
        return results

    async def _retry_leftover(
            self,
            session: TranslationSession,
            task: TranslationTask,
            working: WorkingCopy
    ) -> Optional[EntryResult]:
        if session.token.is_cancelled:
            return None
        return await self._translate_task(session, task, working)

    def _log_summary(self, session: TranslationSession) -> None:
        message = (
            f"Session {session.session_id} settled: {session.translated} translated, "
            f"{session.skipped} skipped, {session.fallbacks} kept source text, "
            f"{session.not_started} not started."
        )
        if session.cancelled:
            logger.warning("Translation cancelled by user. " + message)
        else:
            logger.info(message)
