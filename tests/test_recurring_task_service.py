# tests/test_recurring_task_service.py

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, select

from taskflow.models.task import Task
from taskflow.services.recurring_task_service import RecurringTaskService, build_instance
from taskflow.services.task_repository import TaskRepository

from .conftest import TODAY


def instances_of(engine, parent_id: int) -> list[Task]:
    with Session(engine) as session:
        statement = select(Task).where(Task.parent_id == parent_id).order_by(Task.due_date)
        return list(session.exec(statement).all())


def reload(engine, task_id: int) -> Task:
    with Session(engine) as session:
        return session.get(Task, task_id)


def test_daily_catch_up_creates_one_instance_per_missed_day(engine, recurring_service, make_task) -> None:
    parent = make_task(recurrence="daily", last_generated_date=TODAY - timedelta(days=5))

    report = recurring_service.run()

    instances = instances_of(engine, parent.id)
    assert [i.due_date for i in instances] == [TODAY - timedelta(days=n) for n in (4, 3, 2, 1, 0)]
    assert report.instances_created == 5
    assert reload(engine, parent.id).last_generated_date == TODAY


def test_second_run_on_same_day_creates_nothing(engine, recurring_service, make_task) -> None:
    parent = make_task(recurrence="daily", last_generated_date=TODAY - timedelta(days=3))

    recurring_service.run()
    second = recurring_service.run()

    assert second.parents_processed == 0
    assert second.instances_created == 0
    assert len(instances_of(engine, parent.id)) == 3


def test_new_template_anchors_on_due_date_then_created_at(engine, recurring_service, make_task) -> None:
    with_due = make_task(recurrence="daily", due_date=TODAY - timedelta(days=2), created_at=datetime(2024, 1, 1))
    without_due = make_task(recurrence="weekly", created_at=TODAY - timedelta(days=7, hours=-10))

    recurring_service.run()

    assert [i.due_date for i in instances_of(engine, with_due.id)] == [TODAY - timedelta(days=1), TODAY]
    assert [i.due_date for i in instances_of(engine, without_due.id)] == [TODAY]


def test_weekly_template_created_on_monday_first_lands_on_wednesday(engine, make_task, metrics) -> None:
    monday = datetime(2024, 3, 11, 8, 0)
    parent = make_task(recurrence="weekly", recurrence_details={"day_of_week": 3}, created_at=monday)
    service = RecurringTaskService(engine, clock=lambda: datetime(2024, 3, 13), metrics=metrics)

    service.run()

    assert [i.due_date for i in instances_of(engine, parent.id)] == [datetime(2024, 3, 13)]


def test_future_first_occurrence_only_moves_watermark(engine, recurring_service, make_task) -> None:
    parent = make_task(recurrence="monthly", due_date=TODAY + timedelta(days=3))

    report = recurring_service.run()

    assert report.parents_processed == 1
    assert report.instances_created == 0
    assert instances_of(engine, parent.id) == []
    assert reload(engine, parent.id).last_generated_date == TODAY


def test_instance_copies_template_and_resets_progress(engine, recurring_service, make_task) -> None:
    parent = make_task(
        recurrence="daily",
        last_generated_date=TODAY - timedelta(days=1),
        description="Balcony and kitchen",
        priority="high",
        tags=["home", "plants"],
        subtasks=[{"title": "Fill can", "completed": True}, {"title": "Water", "completed": False}],
        reminder_time=datetime(2024, 1, 2, 8, 30, 45, 123),
        is_archived=True,
        pinned=True,
        sort_order=4,
    )

    recurring_service.run()

    (instance,) = instances_of(engine, parent.id)
    assert instance.is_instance is True
    assert instance.parent_id == parent.id
    assert instance.user_id == parent.user_id
    assert instance.title == parent.title
    assert instance.description == "Balcony and kitchen"
    assert instance.priority == "high"
    assert instance.tags == ["home", "plants"]
    assert instance.subtasks == [
        {"title": "Fill can", "completed": False},
        {"title": "Water", "completed": False},
    ]
    assert instance.due_date == TODAY
    assert instance.reminder_time == datetime(2024, 3, 15, 8, 30, 45)
    assert instance.completed is False
    assert instance.completed_at is None
    assert instance.recurrence == "none"
    assert instance.recurrence_details == {}
    assert instance.is_archived is False

    # The template itself is left as it was
    template = reload(engine, parent.id)
    assert template.subtasks[0]["completed"] is True


def test_build_instance_does_not_share_mutable_state() -> None:
    parent = Task(
        id=7,
        user_id="user-1",
        title="Stretch",
        tags=["health"],
        subtasks=[{"title": "Neck", "completed": True}],
    )

    instance = build_instance(parent, datetime(2024, 3, 15, 12, 0))
    instance.tags.append("extra")
    instance.subtasks[0]["title"] = "changed"

    assert parent.tags == ["health"]
    assert parent.subtasks == [{"title": "Neck", "completed": True}]
    assert instance.due_date == datetime(2024, 3, 15)
    assert instance.reminder_time is None


def test_ineligible_tasks_are_not_processed(engine, recurring_service, make_task) -> None:
    completed = make_task(recurrence="daily", completed=True, last_generated_date=TODAY - timedelta(days=2))
    plain = make_task(recurrence="none", created_at=TODAY - timedelta(days=10))
    instance = make_task(recurrence="daily", is_instance=True, parent_id=999, created_at=TODAY - timedelta(days=4))
    up_to_date = make_task(recurrence="daily", last_generated_date=TODAY)

    report = recurring_service.run()

    assert report.parents_processed == 0
    for task in (completed, plain, instance, up_to_date):
        assert instances_of(engine, task.id) == []
    assert reload(engine, completed.id).last_generated_date == TODAY - timedelta(days=2)


def test_archived_templates_follow_configuration(engine, make_task, metrics) -> None:
    parent = make_task(recurrence="daily", is_archived=True, last_generated_date=TODAY - timedelta(days=1))

    excluded = RecurringTaskService(engine, clock=lambda: TODAY, include_archived=False, metrics=metrics).run()
    assert excluded.parents_processed == 0
    assert instances_of(engine, parent.id) == []

    included = RecurringTaskService(engine, clock=lambda: TODAY, metrics=metrics).run()
    assert included.instances_created == 1


def test_unsupported_kind_is_skipped_without_advancing(engine, recurring_service, make_task) -> None:
    parent = make_task(recurrence="hourly", last_generated_date=TODAY - timedelta(days=2))

    report = recurring_service.run()

    assert report.skipped == [parent.id]
    assert reload(engine, parent.id).last_generated_date == TODAY - timedelta(days=2)


def test_failing_template_does_not_stop_the_run(engine, recurring_service, make_task, monkeypatch, metrics) -> None:
    broken = make_task(recurrence="daily", last_generated_date=TODAY - timedelta(days=3))
    healthy = make_task(recurrence="daily", last_generated_date=TODAY - timedelta(days=2))

    original = recurring_service.materialize_instance
    calls = {"broken": 0}

    def flaky(repository, parent, occurrence):
        if parent.id == broken.id:
            calls["broken"] += 1
            if calls["broken"] == 2:
                raise RuntimeError("store unavailable")
        return original(repository, parent, occurrence)

    monkeypatch.setattr(recurring_service, "materialize_instance", flaky)

    report = recurring_service.run()

    assert report.failed == [broken.id]
    assert len(instances_of(engine, healthy.id)) == 2
    # Nothing from the broken template was committed, and it stays eligible
    assert instances_of(engine, broken.id) == []
    assert reload(engine, broken.id).last_generated_date == TODAY - timedelta(days=3)
    assert metrics.get_metrics()["counters"]["recurring_parents_failed_total"] == 1

    monkeypatch.undo()
    retry = recurring_service.run()
    assert retry.instances_created == 3


def test_stale_template_loses_watermark_race(engine, recurring_service, make_task, metrics) -> None:
    parent = make_task(recurrence="daily", last_generated_date=TODAY - timedelta(days=2))
    with Session(engine) as session:
        (stale,) = TaskRepository(session).find_eligible_parents(TODAY)

    recurring_service.run()
    created = recurring_service.generate_for_parent(stale, TODAY)

    assert created is None
    assert len(instances_of(engine, parent.id)) == 2


def test_eligibility_query_failure_propagates(recurring_service, monkeypatch) -> None:
    def boom(self, today, include_archived=True):
        raise RuntimeError("database down")

    monkeypatch.setattr(TaskRepository, "find_eligible_parents", boom)

    with pytest.raises(RuntimeError, match="database down"):
        recurring_service.run()


def test_run_updates_metrics(make_task, recurring_service, metrics) -> None:
    make_task(recurrence="daily", last_generated_date=TODAY - timedelta(days=2))
    make_task(recurrence="weekly", last_generated_date=TODAY - timedelta(days=1))

    recurring_service.run()

    counters = metrics.get_metrics()["counters"]
    assert counters["recurring_runs_total"] == 1
    assert counters["recurring_parents_processed_total"] == 2
    assert counters["recurring_instances_created_total"] == 2


def test_anchor_uses_calendar_day_of_configured_timezone(engine, make_task, metrics) -> None:
    # 2024-03-11 05:00 in Tokyo
    parent = make_task(recurrence="daily", created_at=datetime(2024, 3, 10, 20, 0))
    service = RecurringTaskService(
        engine, clock=lambda: datetime(2024, 3, 12), metrics=metrics, timezone="Asia/Tokyo"
    )

    report = service.run()

    assert report.instances_created == 1
    (instance,) = instances_of(engine, parent.id)
    # Tokyo midnight of 2024-03-12, stored as UTC
    assert instance.due_date == datetime(2024, 3, 11, 15, 0)
    assert reload(engine, parent.id).last_generated_date == datetime(2024, 3, 12)


def test_instance_reminder_keeps_local_wall_clock_time() -> None:
    # 09:30 in New York (EST) on the template
    parent = Task(id=3, user_id="user-1", title="Standup", reminder_time=datetime(2024, 3, 1, 14, 30))

    # After the switch to daylight saving time
    instance = build_instance(parent, datetime(2024, 3, 12), "America/New_York")

    assert instance.due_date == datetime(2024, 3, 12, 4, 0)
    assert instance.reminder_time == datetime(2024, 3, 12, 13, 30)
