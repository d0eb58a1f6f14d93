"""Per-(account, category) sync control loop.

One run pages through a provider and, for every page::

    FETCHING     client.fetch_page(cursor)
    RECONCILING  map -> resolve thread -> load stored record -> reconcile
    PERSISTING   upsert records, re-derive touched threads, advance cursor

Runs for different keys are independent and may execute concurrently; a
key never has more than one run in flight.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

import structlog

from email_unifier.config import Settings, get_settings
from email_unifier.exceptions import (
    AuthenticationError,
    ConfigurationError,
    MalformedPayloadError,
    ProviderUnavailableError,
    StorageFailureError,
    SyncInProgressError,
)
from email_unifier.mapping import CanonicalMapper, aggregate_thread
from email_unifier.models import (
    Provider,
    SyncKey,
    SyncMode,
    SyncSummary,
    UnifiedEmail,
    UnifiedThread,
)
from email_unifier.parsing import normalize_subject
from email_unifier.providers import FetchPage, ProviderClient
from email_unifier.storage import Storage
from email_unifier.sync.cache import ThreadCache
from email_unifier.sync.conflicts import ConflictResolver
from email_unifier.sync.cursors import SyncCursorStore
from email_unifier.sync.states import SyncEvent, SyncState, SyncStateMachine

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderBinding(NamedTuple):
    """Provider and transport used to sync one account."""

    provider: Provider
    client: ProviderClient


@dataclass
class _PageResult:
    records: list[tuple[UnifiedEmail, str | None]] = field(default_factory=list)
    conflicts: int = 0
    truncated: int = 0
    skipped: int = 0
    failed: int = 0


class SyncOrchestrator:
    """Runs sync passes for (account, category) keys.

    Args:
        storage: Persistence collaborator for canonical records.
        accounts: Provider binding per account id. More can be added with
            :meth:`register_account`.
        mapper: Canonical mapper; its thread resolver is reused for the
            subject correction step.
        conflict_resolver: Field-level reconciler.
        cursor_store: Shared cursor state.
        thread_cache: Shared thread cache.
        settings: Application settings; defaults to :func:`get_settings`.
        clock: Time source for summaries.
    """

    def __init__(
        self,
        storage: Storage,
        accounts: Mapping[str, ProviderBinding] | None = None,
        *,
        mapper: CanonicalMapper | None = None,
        conflict_resolver: ConflictResolver | None = None,
        cursor_store: SyncCursorStore | None = None,
        thread_cache: ThreadCache | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.storage = storage
        self.mapper = mapper or CanonicalMapper(
            no_subject_placeholder=self.settings.no_subject_placeholder
        )
        self.resolver = self.mapper.resolver
        self.conflict_resolver = conflict_resolver or ConflictResolver(
            self.settings.conflict_history_limit
        )
        self.cursor_store = cursor_store or SyncCursorStore(self.settings.cursor_history_limit)
        self.thread_cache = thread_cache or ThreadCache(self.settings.thread_cache_size)
        self._clock = clock

        self._accounts: dict[str, ProviderBinding] = dict(accounts or {})
        self._machines: dict[SyncKey, SyncStateMachine] = {}
        self._cancel_events: dict[SyncKey, threading.Event] = {}
        self._guard = threading.Lock()

    def register_account(
        self, account_id: str, provider: Provider | str, client: ProviderClient
    ) -> None:
        with self._guard:
            self._accounts[account_id] = ProviderBinding(Provider(provider), client)

    # Public surface

    def run_sync(
        self,
        account_id: str,
        category: str,
        mode: SyncMode | str = SyncMode.INCREMENTAL,
    ) -> SyncSummary:
        """Run one sync pass for ``(account_id, category)``.

        Returns:
            Summary of the pass. ``has_more`` is true when the page ceiling
            was reached or the run was cancelled before the provider was
            exhausted.

        Raises:
            SyncInProgressError: If the key already has a run in flight.
            ProviderUnavailableError: If a page could not be fetched.
            StorageFailureError: If a page could not be persisted. The cursor
                is left at its pre-page value.
            ConfigurationError: If the account has no provider binding.
        """

        key = SyncKey(account_id, category)
        binding = self._binding_for(account_id)
        machine, cancel_event = self._acquire(key)

        try:
            return self._run(key, binding, SyncMode(mode), machine, cancel_event)
        except Exception as exc:
            if machine.is_active:
                machine.trigger(SyncEvent.FAIL)
            logger.error(
                "sync_failed",
                account_id=account_id,
                category=category,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        finally:
            if machine.state is SyncState.FAILED:
                machine.trigger(SyncEvent.RESET)
            self._release(key)

    def run_many(
        self,
        keys: Iterable[SyncKey | tuple[str, str]],
        mode: SyncMode | str = SyncMode.INCREMENTAL,
    ) -> dict[SyncKey, SyncSummary | Exception]:
        """Run several keys concurrently on a worker pool.

        Failures are returned in place of a summary rather than raised, so
        one failing key does not hide the outcome of the others.
        """

        unique = list(dict.fromkeys(SyncKey(*k) for k in keys))
        results: dict[SyncKey, SyncSummary | Exception] = {}
        if not unique:
            return results

        workers = min(self.settings.sync_workers, len(unique))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="email-sync") as pool:
            futures = {
                key: pool.submit(self.run_sync, key.account_id, key.category, mode)
                for key in unique
            }
            for key, future in futures.items():
                try:
                    results[key] = future.result()
                except Exception as exc:  # noqa: BLE001
                    results[key] = exc
        return results

    def cancel(self, account_id: str, category: str) -> bool:
        """Request cancellation of an in-flight run at the next page boundary.

        Returns:
            True if a run was in flight for the key.
        """

        key = SyncKey(account_id, category)
        with self._guard:
            event = self._cancel_events.get(key)
        if event is None:
            return False
        event.set()
        logger.info("sync_cancel_requested", account_id=account_id, category=category)
        return True

    def state(self, account_id: str, category: str) -> SyncState:
        with self._guard:
            machine = self._machines.get(SyncKey(account_id, category))
        return machine.state if machine else SyncState.IDLE

    def get_thread(self, account_id: str, thread_id: str) -> UnifiedThread | None:
        """Read a thread through the cache, falling back to storage."""

        thread = self.thread_cache.get(account_id, thread_id)
        if thread is not None:
            return thread
        thread = self.storage.find_thread(account_id, thread_id)
        if thread is not None:
            self.thread_cache.put(thread)
        return thread

    # Run bookkeeping

    def _binding_for(self, account_id: str) -> ProviderBinding:
        with self._guard:
            binding = self._accounts.get(account_id)
        if binding is None:
            raise ConfigurationError(f"No provider client registered for account {account_id!r}")
        return binding

    def _acquire(self, key: SyncKey) -> tuple[SyncStateMachine, threading.Event]:
        with self._guard:
            machine = self._machines.setdefault(key, SyncStateMachine())
            if machine.state is not SyncState.IDLE or key in self._cancel_events:
                raise SyncInProgressError(
                    f"Sync already running for {key.account_id}/{key.category}",
                    account_id=key.account_id,
                    category=key.category,
                )
            machine.trigger(SyncEvent.START)
            event = self._cancel_events[key] = threading.Event()
        return machine, event

    def _release(self, key: SyncKey) -> None:
        with self._guard:
            self._cancel_events.pop(key, None)

    # Page loop

    def _run(
        self,
        key: SyncKey,
        binding: ProviderBinding,
        mode: SyncMode,
        machine: SyncStateMachine,
        cancel_event: threading.Event,
    ) -> SyncSummary:
        cursor = self.cursor_store.get(key)
        full = mode is SyncMode.FULL or cursor is None
        token = None if full else cursor.cursor_token
        page_size = self.settings.initial_page_size if full else self.settings.page_size

        summary = SyncSummary(
            account_id=key.account_id,
            category=key.category,
            mode=SyncMode.FULL if full else SyncMode.INCREMENTAL,
            cursor_token=token,
            started_at=self._clock(),
        )
        logger.info(
            "sync_started",
            account_id=key.account_id,
            category=key.category,
            provider=binding.provider.value,
            mode=summary.mode.value,
            has_cursor=token is not None,
        )

        while True:
            page = self._fetch(key, binding, token, page_size)
            machine.trigger(SyncEvent.PAGE_FETCHED)

            result = self._reconcile_page(key, binding.provider, page, token)
            machine.trigger(SyncEvent.RECONCILED)

            persisted, failed = self._persist_page(key, binding.provider, result, token)
            token = page.next_cursor or token
            self.cursor_store.advance(key, token, result.conflicts)

            summary.pages_fetched += 1
            summary.email_count += persisted
            summary.conflicts_resolved += result.conflicts
            summary.conflicts_truncated += result.truncated
            summary.skipped_count += result.skipped
            summary.failed_count += result.failed + failed
            summary.has_more = page.has_more
            summary.cursor_token = token

            logger.info(
                "sync_page_processed",
                account_id=key.account_id,
                category=key.category,
                page=summary.pages_fetched,
                items=len(page.items),
                persisted=persisted,
                skipped=result.skipped,
                failed=result.failed + failed,
                has_more=page.has_more,
            )

            if not page.has_more:
                break
            if summary.pages_fetched >= self.settings.max_pages_per_run:
                logger.info(
                    "sync_page_ceiling_reached",
                    account_id=key.account_id,
                    category=key.category,
                    max_pages=self.settings.max_pages_per_run,
                )
                break
            if cancel_event.is_set():
                summary.cancelled = True
                logger.info("sync_cancelled", account_id=key.account_id, category=key.category)
                break
            page_size = self.settings.page_size
            machine.trigger(SyncEvent.NEXT_PAGE)

        machine.trigger(SyncEvent.COMPLETE)
        summary.finished_at = self._clock()
        self.cursor_store.record_pass(key, summary)

        logger.info(
            "sync_completed",
            account_id=key.account_id,
            category=key.category,
            email_count=summary.email_count,
            conflicts_resolved=summary.conflicts_resolved,
            skipped=summary.skipped_count,
            failed=summary.failed_count,
            has_more=summary.has_more,
        )
        return summary

    def _fetch(
        self,
        key: SyncKey,
        binding: ProviderBinding,
        token: str | None,
        page_size: int,
    ) -> FetchPage:
        try:
            return binding.client.fetch_page(key.account_id, key.category, token, page_size)
        except (AuthenticationError, ConfigurationError):
            raise
        except Exception as exc:
            raise ProviderUnavailableError(
                f"Failed to fetch {binding.provider.value} page for "
                f"{key.account_id}/{key.category}: {exc}",
                account_id=key.account_id,
                category=key.category,
                cursor_token=token,
            ) from exc

    def _reconcile_page(
        self,
        key: SyncKey,
        provider: Provider,
        page: FetchPage,
        token: str | None,
    ) -> _PageResult:
        result = _PageResult()

        for payload in page.items:
            try:
                incoming = self.mapper.to_unified_email(
                    payload, provider, folder_context=key.category, account_id=key.account_id
                )
                existing = self.storage.find_canonical_email(
                    provider, key.account_id, incoming.id
                )
                incoming = self._settle_thread_id(incoming, existing, provider)
                reconciled = self.conflict_resolver.reconcile(incoming, existing)
            except MalformedPayloadError as exc:
                result.skipped += 1
                logger.warning(
                    "sync_payload_skipped",
                    account_id=key.account_id,
                    category=key.category,
                    error=str(exc),
                )
                continue
            except StorageFailureError as exc:
                raise self._storage_failure(key, token, exc) from exc
            except Exception as exc:  # noqa: BLE001
                result.failed += 1
                logger.exception(
                    "sync_message_failed",
                    account_id=key.account_id,
                    category=key.category,
                    stage="reconcile",
                    error=str(exc),
                )
                continue

            result.records.append(
                (reconciled.merged, existing.thread_id if existing is not None else None)
            )
            result.conflicts += len(reconciled.conflicts)
            result.truncated += reconciled.truncated

        return result

    def _persist_page(
        self,
        key: SyncKey,
        provider: Provider,
        result: _PageResult,
        token: str | None,
    ) -> tuple[int, int]:
        persisted = failed = 0
        touched: dict[str, None] = {}

        try:
            for email, previous_thread_id in result.records:
                try:
                    self.storage.upsert_canonical_email(email)
                except StorageFailureError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    failed += 1
                    logger.exception(
                        "sync_message_failed",
                        account_id=key.account_id,
                        category=key.category,
                        email_id=email.id,
                        stage="persist",
                        error=str(exc),
                    )
                    continue
                persisted += 1
                touched[email.thread_id] = None
                if previous_thread_id and previous_thread_id != email.thread_id:
                    touched[previous_thread_id] = None

            # Aggregates are derived once per page, after every member is stored.
            for thread_id in touched:
                self._refresh_thread(key.account_id, provider, thread_id)
        except StorageFailureError as exc:
            raise self._storage_failure(key, token, exc) from exc

        return persisted, failed

    # Threads

    def _settle_thread_id(
        self,
        incoming: UnifiedEmail,
        existing: UnifiedEmail | None,
        provider: Provider,
    ) -> UnifiedEmail:
        resolution = self.resolver.resolve(incoming, provider)
        if not resolution.is_fallback:
            return incoming

        # A stored message keeps the thread it was already placed in.
        if existing is not None:
            if existing.thread_id != incoming.thread_id:
                return incoming.model_copy(update={"thread_id": existing.thread_id})
            return incoming

        if not self.resolver.wants_subject_correction(incoming, resolution):
            return incoming

        target = self._find_reply_target(incoming)
        if target is None or target.thread_id == incoming.thread_id:
            return incoming

        logger.debug(
            "thread_subject_match",
            email_id=incoming.id,
            thread_id=target.thread_id,
            clean_subject=target.clean_subject,
        )
        return incoming.model_copy(update={"thread_id": target.thread_id})

    def _find_reply_target(self, email: UnifiedEmail) -> UnifiedThread | None:
        sender = email.sender_email
        clean_subject = normalize_subject(email.subject)
        if not sender or not clean_subject:
            return None

        reference = email.received_date or email.sent_date or self._clock()
        since = reference - timedelta(days=self.settings.subject_match_window_days)

        thread = self.thread_cache.find_by_subject_and_sender(
            email.account_id, clean_subject, sender, since
        )
        if thread is None:
            thread = self.storage.find_thread_by_clean_subject_and_sender(
                clean_subject, sender, account_id=email.account_id, since=since
            )
            if thread is not None:
                self.thread_cache.put(thread)
        return thread

    def _refresh_thread(self, account_id: str, provider: Provider, thread_id: str) -> None:
        members = self.storage.find_thread_members(thread_id, account_id)
        if not members:
            self.storage.delete_thread(account_id, thread_id)
            self.thread_cache.invalidate(account_id, thread_id)
            logger.debug("thread_deleted", account_id=account_id, thread_id=thread_id)
            return

        thread = aggregate_thread(
            thread_id,
            members,
            account_id=account_id,
            provider=provider,
            no_subject_placeholder=self.settings.no_subject_placeholder,
        )
        self.storage.upsert_thread(thread)
        self.thread_cache.put(thread)

    @staticmethod
    def _storage_failure(
        key: SyncKey, token: str | None, exc: StorageFailureError
    ) -> StorageFailureError:
        return StorageFailureError(
            f"Storage failed while syncing {key.account_id}/{key.category}: {exc}",
            account_id=key.account_id,
            category=key.category,
            cursor_token=token,
        )
