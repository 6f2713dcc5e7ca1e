"""Tests for scanner.tasks: the Celery entry points."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone

from domains.models import Domain
from scanner import jobs, tasks
from scanner.models import Analysis

pytestmark = pytest.mark.django_db


@pytest.fixture()
def enqueued(monkeypatch) -> list:
    calls = []

    def fake_enqueue(payload, priority=jobs.Priority.NORMAL, countdown=None):
        calls.append({"payload": payload, "priority": priority, "countdown": countdown})
        return f"job-{len(calls)}"

    monkeypatch.setattr(jobs, "enqueue", fake_enqueue)
    return calls


@pytest.fixture()
def fake_browser(monkeypatch, fake_session_factory, one_page_site, fast_analysis):
    factory = fake_session_factory(one_page_site)
    monkeypatch.setattr("scanner.orchestrator.BrowserSession", lambda config, headless=True: factory.session)
    return factory.session


class TestRunAnalysisTask:
    """Tests for run_analysis_task, called in-process."""

    def test_missing_record(self) -> None:
        result = tasks.run_analysis_task("00000000-0000-0000-0000-000000000000")
        assert result["status"] is None

    def test_terminal_record_skipped(self, make_analysis, fake_browser) -> None:
        analysis = make_analysis(status=Analysis.Status.CANCELLED)
        result = tasks.run_analysis_task(str(analysis.pk))
        assert result["status"] == Analysis.Status.CANCELLED
        assert fake_browser.pages == []

    def test_completes(self, make_analysis, fake_browser) -> None:
        analysis = make_analysis()
        result = tasks.run_analysis_task(str(analysis.pk))
        assert result == {"analysis_id": str(analysis.pk), "status": Analysis.Status.COMPLETED}
        assert fake_browser.closed is True

    def test_failure_schedules_successor(self, make_analysis, enqueued, monkeypatch, fast_analysis) -> None:
        def broken(config, headless=True):
            raise RuntimeError("browser crashed")

        monkeypatch.setattr("scanner.orchestrator.BrowserSession", broken)
        analysis = make_analysis()

        result = tasks.run_analysis_task(str(analysis.pk))

        assert result["status"] == Analysis.Status.FAILED
        assert result["error"] == "browser crashed"
        successor = Analysis.objects.get(pk=result["retry_id"])
        assert successor.attempt == 2
        assert successor.retry_of_id == analysis.pk
        assert enqueued[0]["countdown"] == fast_analysis["RETRY_BASE_DELAY_SECONDS"]


class TestContention:
    """Tests for run_analysis_task while another run holds the domain."""

    @pytest.fixture(autouse=True)
    def no_task_state(self, monkeypatch) -> None:
        monkeypatch.setattr(tasks, "update_progress", lambda *args, **kwargs: None)

    def test_cancels_once_retries_run_out(self, make_analysis, fake_browser) -> None:
        make_analysis(status=Analysis.Status.RUNNING, started_at=timezone.now())
        waiting = make_analysis()

        outcome = tasks.run_analysis_task.apply(args=(str(waiting.pk),), retries=tasks.CONTENTION_MAX_RETRIES)

        assert outcome.successful()
        assert outcome.result == {"analysis_id": str(waiting.pk), "status": Analysis.Status.CANCELLED}
        waiting.refresh_from_db()
        assert waiting.status == Analysis.Status.CANCELLED
        assert fake_browser.pages == []

    def test_cancelled_row_no_longer_blocks_new_runs(self, make_analysis, domain, enqueued, fake_browser) -> None:
        running = make_analysis(status=Analysis.Status.RUNNING, started_at=timezone.now())
        waiting = make_analysis()
        tasks.run_analysis_task.apply(args=(str(waiting.pk),), retries=tasks.CONTENTION_MAX_RETRIES)
        Analysis.objects.filter(pk=running.pk).update(status=Analysis.Status.COMPLETED)

        result = tasks.run_scheduled_analysis(str(domain.pk))

        assert result["skipped"] is False


class TestScheduledAnalysis:
    """Tests for run_scheduled_analysis and the beat fan-out."""

    def test_queues_low_priority_run(self, domain, enqueued) -> None:
        result = tasks.run_scheduled_analysis(str(domain.pk), {"depth": 2})
        assert result["skipped"] is False
        analysis = Analysis.objects.get(pk=result["analysis_id"])
        assert analysis.trigger_type == Analysis.TriggerType.SCHEDULED
        assert analysis.priority == jobs.Priority.LOW
        assert analysis.config["depth"] == 2
        assert enqueued[0]["priority"] is jobs.Priority.LOW

    def test_skips_while_active(self, make_analysis, domain, enqueued) -> None:
        active = make_analysis(status=Analysis.Status.RUNNING, started_at=timezone.now())
        result = tasks.run_scheduled_analysis(str(domain.pk))
        assert result == {"domain_id": str(domain.pk), "skipped": True, "active_id": str(active.pk)}
        assert enqueued == []

    def test_stale_active_run_does_not_block(self, make_analysis, domain, enqueued) -> None:
        make_analysis(status=Analysis.Status.RUNNING, started_at=timezone.now() - timedelta(days=1))
        result = tasks.run_scheduled_analysis(str(domain.pk))
        assert result["skipped"] is False

    def test_fan_out_by_frequency(self, user, monkeypatch) -> None:
        Domain.objects.create(user=user, url="https://a.com", auto_analysis_enabled=True, analysis_frequency="daily")
        Domain.objects.create(user=user, url="https://b.com", auto_analysis_enabled=True, analysis_frequency="weekly")
        Domain.objects.create(user=user, url="https://c.com", auto_analysis_enabled=False, analysis_frequency="daily")
        queued = []
        monkeypatch.setattr(tasks.run_scheduled_analysis, "delay", lambda *args: queued.append(args))

        result = tasks.run_scheduled_analyses("daily")

        assert result == {"queued": 1, "frequency": "daily"}
        assert len(queued) == 1
