"""
app/scheduler/jobs.py

APScheduler-based sitemap refresh scheduler.

Run lifecycle
-------------
``idle -> running -> completed | failed | cancelled``. At most one run is
active per scheduler instance; a second request while a run is active
raises ``UpdateAlreadyRunningError`` instead of queueing.

One run loads the tracked websites, splits them into batches of
``max_concurrent`` sites, refreshes each batch on a thread pool and sleeps
between batches. Per-site failures are retried with a growing delay and
never abort siblings. Every finished run lands in the persisted history.

Jobs (when ``auto_update`` is on)
---------------------------------
  sitemap_update        interval job every ``interval_hours``
  sitemap_update_check  one-shot eligibility check at arm time

Both jobs call ``check_and_update()``, which only runs when
``should_update()`` says the last refresh is old enough.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from app.domain.competitor_scraping import (
    ScrapingStatus,
    SiteUpdateResult,
    UpdateTaskConfig,
    UpdateTaskResult,
    UpdateTaskStatus,
    WebsiteConfig,
)
from app.repositories.competitor_state_repository import CompetitorStateRepository
from app.scraping.errors import NoSitesToUpdateError, UpdateAlreadyRunningError
from app.scraping.logging_utils import elapsed_ms, log_event
from app.scraping.sitemap import SitemapReader

logger = logging.getLogger(__name__)

UPDATE_JOB_ID = "sitemap_update"
CHECK_JOB_ID = "sitemap_update_check"

WebsiteSource = Callable[[], Sequence[WebsiteConfig]]


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def generate_task_id() -> str:
    """Return ``task_<epoch ms>_<6 random chars>``."""
    return f"task_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def build_scheduler() -> BackgroundScheduler:
    """
    Return a configured but *not yet started* ``BackgroundScheduler``.
    """
    return BackgroundScheduler(timezone="UTC")


def diff_urls(previous: Sequence[str], current: Sequence[str]) -> tuple[int, int]:
    """
    Return ``(new, updated)`` counts: URLs only in ``current`` and URLs in both.
    """
    old = set(previous)
    new = set(current)
    return len(new - old), len(new & old)


class SitemapUpdateScheduler:
    """
    Periodic and manual sitemap refresh across all tracked competitor sites.
    """

    def __init__(
        self,
        *,
        repository: CompetitorStateRepository,
        sitemap_reader: SitemapReader,
        website_source: WebsiteSource,
        default_config: UpdateTaskConfig | None = None,
        scheduler: BaseScheduler | None = None,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], None] = time.sleep,
        task_id_factory: Callable[[], str] = generate_task_id,
        batch_delay_seconds: float = 1.0,
        retry_delay_seconds: float = 2.0,
    ) -> None:
        self._repository = repository
        self._reader = sitemap_reader
        self._website_source = website_source
        self._default_config = default_config or UpdateTaskConfig()
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._clock = clock
        self._sleep = sleep
        self._task_id_factory = task_id_factory
        self._batch_delay_seconds = max(0.0, batch_delay_seconds)
        self._retry_delay_seconds = max(0.0, retry_delay_seconds)

        self._state_lock = threading.Lock()
        self._current_task: UpdateTaskResult | None = None
        self._cancel_event = threading.Event()
        self._armed = False

    # ---- lifecycle ----

    def start_scheduler(
        self,
        config: UpdateTaskConfig | None = None,
        **overrides: Any,
    ) -> UpdateTaskConfig:
        """
        Persist the effective config and (re)arm the periodic jobs.

        Overrides are merged over ``config`` when given, else over the
        persisted config. Jobs are only armed when ``auto_update`` is on.
        """
        base = config if config is not None else self.get_config()
        effective = base.merged(**overrides)
        self.save_config(effective)

        self._disarm()
        if effective.auto_update:
            self._arm(effective)

        logger.info(
            "Scheduler: sitemap scheduler started auto_update=%s interval_hours=%s",
            effective.auto_update,
            effective.interval_hours,
        )
        return effective

    def stop_scheduler(self) -> UpdateTaskResult | None:
        """
        Disarm the jobs and cancel the active run, if any.

        Site refreshes already dispatched keep running to completion, but the
        run is recorded as cancelled and no further batches start. Returns the
        cancelled run, or ``None`` when nothing was running.
        """
        self._disarm()
        if self._owns_scheduler and self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None

        with self._state_lock:
            task = self._current_task
            if task is None:
                logger.info("Scheduler: sitemap scheduler stopped")
                return None
            self._cancel_event.set()
            task.finish(status=UpdateTaskStatus.CANCELLED, end_time=self._clock())
            self._repository.append_task_history(task)
            self._current_task = None
            cancelled = self._copy(task)

        log_event(
            logger,
            logging.WARNING,
            "sitemap_update_cancelled",
            task_id=cancelled.task_id,
            duration_ms=cancelled.duration_ms,
        )
        return cancelled

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._current_task is not None

    # ---- eligibility ----

    def should_update(self) -> bool:
        config = self.get_config()
        if not config.auto_update:
            return False
        last_update = self.get_last_update_time()
        if last_update is None:
            return True
        elapsed_hours = (self._clock() - last_update).total_seconds() / 3600
        return elapsed_hours >= config.interval_hours

    def check_and_update(self) -> UpdateTaskResult | None:
        """
        Job entrypoint: run only when due. Errors are logged, never raised.
        """
        try:
            if not self.should_update():
                return None
            return self._run()
        except UpdateAlreadyRunningError:
            logger.info("Scheduler: sitemap_update skipped, a run is already active")
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning("Scheduler: sitemap_update failed: %s", exc)
            return None

    def trigger_manual_update(self, force: bool = False, **overrides: Any) -> UpdateTaskResult:
        """
        Run one refresh synchronously and return its result.

        Raises ``UpdateAlreadyRunningError`` when a run is active and
        ``NoSitesToUpdateError`` when there is nothing to refresh. ``force``
        is accepted for callers that bypass the eligibility check; a manual
        run never consults ``should_update``. ``overrides`` apply to this run
        only and are not persisted.
        """
        run_config = self.get_config().merged(**overrides) if overrides else None
        log_event(logger, logging.INFO, "sitemap_manual_update_requested", force=force)
        return self._run(run_config)

    # ---- accessors ----

    def get_current_task(self) -> UpdateTaskResult | None:
        with self._state_lock:
            return self._copy(self._current_task) if self._current_task else None

    def get_task_history(self, limit: int = 10) -> list[UpdateTaskResult]:
        return self._repository.load_task_history(limit)

    def get_config(self) -> UpdateTaskConfig:
        return self._repository.load_scheduler_config() or self._default_config

    def save_config(self, config: UpdateTaskConfig) -> None:
        self._repository.save_scheduler_config(config)

    def update_config(self, **overrides: Any) -> UpdateTaskConfig:
        """
        Persist config overrides; re-arm the jobs when they are armed.
        """
        if self._armed:
            return self.start_scheduler(**overrides)
        updated = self.get_config().merged(**overrides)
        self.save_config(updated)
        return updated

    def get_last_update_time(self) -> datetime | None:
        return self._repository.load_last_update()

    # ---- one run ----

    def _run(self, run_config: UpdateTaskConfig | None = None) -> UpdateTaskResult:
        with self._state_lock:
            if self._current_task is not None:
                raise UpdateAlreadyRunningError(task_id=self._current_task.task_id)
            task = UpdateTaskResult(task_id=self._task_id_factory(), start_time=self._clock())
            cancel_event = threading.Event()
            self._current_task = task
            self._cancel_event = cancel_event

        log_event(logger, logging.INFO, "sitemap_update_started", task_id=task.task_id)
        try:
            config = run_config or self.get_config()
            websites = list(self._website_source())
            sites = [site for site in websites if site.enabled] if config.only_enabled_sites else websites
            task.total_sites = len(sites)
            if not sites:
                raise NoSitesToUpdateError()

            results = self._update_in_batches(sites, config, cancel_event)
            return self._complete(task, results)
        except Exception as exc:
            self._fail(task, exc)
            raise
        finally:
            with self._state_lock:
                if self._current_task is task:
                    self._current_task = None

    def _update_in_batches(
        self,
        sites: Sequence[WebsiteConfig],
        config: UpdateTaskConfig,
        cancel_event: threading.Event,
    ) -> list[SiteUpdateResult]:
        results: list[SiteUpdateResult] = []
        batch_size = config.max_concurrent

        for start in range(0, len(sites), batch_size):
            if cancel_event.is_set():
                logger.info("Scheduler: sitemap_update cancelled before batch %s", start // batch_size + 1)
                break

            batch = sites[start : start + batch_size]
            with ThreadPoolExecutor(
                max_workers=len(batch),
                thread_name_prefix="sitemap-update",
            ) as pool:
                futures = [pool.submit(self.update_single_site, site, config) for site in batch]
                for site, future in zip(batch, futures):
                    try:
                        results.append(future.result())
                    except Exception as exc:  # noqa: BLE001
                        results.append(
                            SiteUpdateResult(
                                website_id=site.id,
                                website_name=site.name,
                                status=ScrapingStatus.FAILED,
                                error=str(exc) or "update failed",
                            )
                        )

            if start + batch_size < len(sites) and not cancel_event.is_set():
                self._sleep(self._batch_delay_seconds)

        return results

    def update_single_site(
        self,
        site: WebsiteConfig,
        config: UpdateTaskConfig | None = None,
    ) -> SiteUpdateResult:
        """
        Refresh one site's sitemap, retrying up to ``max_retries`` times.

        On success the new snapshot replaces the stored one and the result
        carries the diff against it.
        """
        config = config or self.get_config()
        started = time.monotonic()
        previous = self._repository.load_snapshot(site.id)
        previous_urls = previous.urls if previous is not None else ()

        attempt = 0
        last_error = "Sitemap fetch failed"
        while attempt <= config.max_retries:
            try:
                snapshot = self._reader.fetch_sitemap(site)
                if snapshot.succeeded:
                    self._repository.save_snapshot(snapshot)
                    new_urls, updated_urls = diff_urls(previous_urls, snapshot.urls)
                    log_event(
                        logger,
                        logging.INFO,
                        "site_update_succeeded",
                        website=site.name,
                        attempt=attempt + 1,
                        new_urls=new_urls,
                        updated_urls=updated_urls,
                    )
                    return SiteUpdateResult(
                        website_id=site.id,
                        website_name=site.name,
                        status=ScrapingStatus.SUCCESS,
                        new_urls=new_urls,
                        updated_urls=updated_urls,
                        duration_ms=elapsed_ms(started),
                    )
                last_error = snapshot.error_message or last_error
            except Exception as exc:  # noqa: BLE001
                last_error = str(exc) or exc.__class__.__name__

            attempt += 1
            if attempt <= config.max_retries:
                log_event(
                    logger,
                    logging.WARNING,
                    "site_update_retry",
                    website=site.name,
                    attempt=attempt,
                    max_attempts=config.max_retries + 1,
                    error=last_error,
                )
                self._sleep(self._retry_delay_seconds * attempt)

        log_event(
            logger,
            logging.ERROR,
            "site_update_failed",
            website=site.name,
            attempts=config.max_retries + 1,
            error=last_error,
        )
        return SiteUpdateResult(
            website_id=site.id,
            website_name=site.name,
            status=ScrapingStatus.FAILED,
            error=last_error,
            duration_ms=elapsed_ms(started),
        )

    def _complete(self, task: UpdateTaskResult, results: list[SiteUpdateResult]) -> UpdateTaskResult:
        success_sites = sum(1 for item in results if item.status == ScrapingStatus.SUCCESS)
        failed_sites = sum(1 for item in results if item.status == ScrapingStatus.FAILED)

        with self._state_lock:
            if self._current_task is not task:
                # Cancelled by stop_scheduler; history already has the record.
                return self._copy(task)

            task.success_sites = success_sites
            task.failed_sites = failed_sites
            task.new_urls = sum(item.new_urls for item in results)
            task.updated_urls = sum(item.updated_urls for item in results)
            task.errors = [f"{item.website_name}: {item.error}" for item in results if item.error]
            task.finish(
                status=UpdateTaskStatus.FAILED if failed_sites else UpdateTaskStatus.COMPLETED,
                end_time=self._clock(),
            )
            self._repository.save_last_update(task.end_time)
            self._repository.append_task_history(task)
            self._current_task = None
            finished = self._copy(task)

        log_event(
            logger,
            logging.INFO,
            "sitemap_update_finished",
            task_id=finished.task_id,
            status=finished.status,
            total_sites=finished.total_sites,
            success_sites=finished.success_sites,
            failed_sites=finished.failed_sites,
            new_urls=finished.new_urls,
            duration_ms=finished.duration_ms,
        )
        return finished

    def _fail(self, task: UpdateTaskResult, exc: Exception) -> None:
        with self._state_lock:
            if self._current_task is not task:
                return
            task.errors.append(str(exc))
            task.finish(status=UpdateTaskStatus.FAILED, end_time=self._clock())
            self._repository.append_task_history(task)
            self._current_task = None

        log_event(
            logger,
            logging.ERROR,
            "sitemap_update_failed",
            task_id=task.task_id,
            error=str(exc),
        )

    # ---- APScheduler jobs ----

    def _arm(self, config: UpdateTaskConfig) -> None:
        if self._scheduler is None:
            self._scheduler = build_scheduler()
        if not self._scheduler.running:
            self._scheduler.start()

        self._scheduler.add_job(
            self.check_and_update,
            trigger="interval",
            hours=config.interval_hours,
            id=UPDATE_JOB_ID,
            name="Competitor sitemap refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        self._scheduler.add_job(
            self.check_and_update,
            trigger="date",
            id=CHECK_JOB_ID,
            name="Competitor sitemap eligibility check",
            replace_existing=True,
        )
        self._armed = True

    def _disarm(self) -> None:
        if self._scheduler is not None:
            for job_id in (UPDATE_JOB_ID, CHECK_JOB_ID):
                if self._scheduler.get_job(job_id) is not None:
                    self._scheduler.remove_job(job_id)
        self._armed = False

    @staticmethod
    def _copy(task: UpdateTaskResult) -> UpdateTaskResult:
        return replace(task, errors=list(task.errors))
