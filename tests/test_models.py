"""Tests for scanner.models: the Analysis record and its guarded writes."""

from __future__ import annotations

import re
from datetime import timedelta

import pytest
from django.utils import timezone

from scanner import lifecycle
from scanner.exceptions import InvalidTransition
from scanner.models import Analysis, generate_scan_id

pytestmark = pytest.mark.django_db


class TestScanId:
    def test_format(self) -> None:
        assert re.fullmatch(r"scan_[0-9a-z]+_[0-9a-f]{9}", generate_scan_id())

    def test_unique_per_record(self, make_analysis) -> None:
        assert make_analysis().scan_id != make_analysis().scan_id


class TestTransition:
    """Tests for Analysis.transition()."""

    def test_start_sets_started_at(self, make_analysis) -> None:
        a = make_analysis()
        assert a.transition(lifecycle.START) == lifecycle.RUNNING
        a.refresh_from_db()
        assert a.status == Analysis.Status.RUNNING
        assert a.started_at is not None

    def test_complete_sets_finished_and_full_progress(self, make_analysis) -> None:
        a = make_analysis()
        a.transition(lifecycle.START)
        a.transition(lifecycle.COMPLETE, statistics={"total_cookies": 0})
        a.refresh_from_db()
        assert a.status == Analysis.Status.COMPLETED
        assert a.percentage == 100
        assert a.finished_at is not None
        assert a.statistics == {"total_cookies": 0}

    def test_pending_can_be_cancelled(self, make_analysis) -> None:
        a = make_analysis()
        a.transition(lifecycle.CANCEL)
        assert Analysis.objects.get(pk=a.pk).status == Analysis.Status.CANCELLED

    @pytest.mark.parametrize("event", [lifecycle.START, lifecycle.COMPLETE, lifecycle.FAIL, lifecycle.CANCEL])
    def test_terminal_is_final(self, make_analysis, event: str) -> None:
        a = make_analysis(status=Analysis.Status.COMPLETED)
        with pytest.raises(InvalidTransition):
            a.transition(event)
        assert Analysis.objects.get(pk=a.pk).status == Analysis.Status.COMPLETED

    def test_compare_and_set_against_stale_instance(self, make_analysis) -> None:
        worker = make_analysis(status=Analysis.Status.RUNNING)
        user_view = Analysis.objects.get(pk=worker.pk)

        user_view.transition(lifecycle.CANCEL)
        with pytest.raises(InvalidTransition):
            worker.transition(lifecycle.COMPLETE)

        assert worker.status == Analysis.Status.CANCELLED
        assert Analysis.objects.get(pk=worker.pk).status == Analysis.Status.CANCELLED


class TestGuardedWrites:
    """Progress, errors and signals only land on active records."""

    def test_progress_is_monotonic(self, make_analysis) -> None:
        a = make_analysis(status=Analysis.Status.RUNNING, started_at=timezone.now())
        a.update_progress("analysis", "half", 50)
        a.update_progress("analysis", "back", 30)
        a.refresh_from_db()
        assert a.percentage == 50
        assert a.step == "back"
        assert a.estimated_seconds_remaining is not None

    def test_progress_ignored_when_terminal(self, make_analysis) -> None:
        a = make_analysis(status=Analysis.Status.CANCELLED)
        assert a.update_progress("analysis", "late", 70) is False
        assert Analysis.objects.get(pk=a.pk).percentage == 0

    def test_add_error_appends(self, make_analysis) -> None:
        a = make_analysis(status=Analysis.Status.RUNNING)
        a.add_error("https://example.com/a", "boom")
        a.add_error("https://example.com/b", ValueError("bad"))
        errors = Analysis.objects.get(pk=a.pk).errors
        assert [e["error"] for e in errors] == ["boom", "bad"]
        assert errors[0]["url"] == "https://example.com/a"

    def test_add_error_ignored_when_terminal(self, make_analysis) -> None:
        a = make_analysis(status=Analysis.Status.FAILED)
        assert a.add_error("https://example.com/", "late") is False

    def test_save_signals(self, make_analysis) -> None:
        a = make_analysis(status=Analysis.Status.RUNNING)
        assert a.save_signals(cookies=[{"name": "a"}], urls_analyzed=1) is True
        assert Analysis.objects.get(pk=a.pk).cookies == [{"name": "a"}]

    def test_save_signals_keeps_cancelled_record_intact(self, make_analysis) -> None:
        a = make_analysis(status=Analysis.Status.CANCELLED, cookies=[{"name": "kept"}])
        assert a.save_signals(cookies=[]) is False
        assert Analysis.objects.get(pk=a.pk).cookies == [{"name": "kept"}]

    def test_save_signals_rejects_other_fields(self, make_analysis) -> None:
        a = make_analysis(status=Analysis.Status.RUNNING)
        with pytest.raises(ValueError):
            a.save_signals(status="completed")


class TestStaleLease:
    def test_is_stale(self, make_analysis, settings) -> None:
        settings.ANALYSIS = {**settings.ANALYSIS, "STALE_LEASE_SECONDS": 60}
        a = make_analysis(status=Analysis.Status.RUNNING, started_at=timezone.now() - timedelta(minutes=5))
        assert a.is_stale() is True
        assert a.is_stale(now=a.started_at + timedelta(seconds=30)) is False


class TestQuerySet:
    """Tests for AnalysisQuerySet helpers."""

    def test_active_for_domain_returns_oldest(self, make_analysis) -> None:
        make_analysis(status=Analysis.Status.COMPLETED)
        first = make_analysis()
        make_analysis()
        Analysis.objects.filter(pk=first.pk).update(created_at=timezone.now() - timedelta(hours=1))
        assert Analysis.objects.active_for_domain(first.domain_id) == first

    def test_last_completed_excludes(self, make_analysis) -> None:
        now = timezone.now()
        old = make_analysis(status=Analysis.Status.COMPLETED, finished_at=now - timedelta(days=2))
        new = make_analysis(status=Analysis.Status.COMPLETED, finished_at=now)
        assert Analysis.objects.last_completed(old.domain_id) == new
        assert Analysis.objects.last_completed(old.domain_id, exclude=new.pk) == old

    def test_trends(self, make_analysis, domain) -> None:
        now = timezone.now()
        make_analysis(
            status=Analysis.Status.COMPLETED,
            finished_at=now - timedelta(days=1),
            statistics={"total_cookies": 4, "compliance_score": {"overall": 75}},
        )
        make_analysis(status=Analysis.Status.COMPLETED, finished_at=now - timedelta(days=90))
        make_analysis(status=Analysis.Status.FAILED, finished_at=now)
        rows = Analysis.objects.trends(domain.pk, days=30)
        assert len(rows) == 1
        assert rows[0]["total_cookies"] == 4
        assert rows[0]["compliance_score"] == 75
