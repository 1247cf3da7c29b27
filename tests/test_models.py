from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from scrume_core.errors import InvariantViolation
from scrume_core.models import (
    SPRINT_STATUS_TRANSITIONS,
    Priority,
    Project,
    Sprint,
    SprintStatus,
    StoryStatus,
    TeamMember,
    UserStory,
    check_invariants,
)


@pytest.mark.parametrize("points", [0, 4, 6, 22, -1, 100, "5", True, None, 2.5])
def test_invalid_story_points_coerce_to_one(points) -> None:
    assert UserStory(title="Login", story_points=points).story_points == 1


@pytest.mark.parametrize("points", [1, 2, 3, 5, 8, 13, 21])
def test_valid_story_points_are_kept(points: int) -> None:
    assert UserStory(title="Login", story_points=points).story_points == points


def test_story_points_are_coerced_on_assignment() -> None:
    story = UserStory(title="Login", story_points=8)
    story.story_points = 7
    assert story.story_points == 1


@pytest.mark.parametrize(("weeks", "expected"), [(0, 1), (-3, 1), (1, 1), (3, 3), (4, 4), (9, 4)])
def test_sprint_duration_is_clamped(weeks: int, expected: int) -> None:
    assert Project(name="Alpha", sprint_duration_weeks=weeks).sprint_duration_weeks == expected


def test_sprint_duration_is_clamped_on_assignment() -> None:
    project = Project(name="Alpha")
    project.sprint_duration_weeks = 12
    assert project.sprint_duration_weeks == 4
    assert project.sprint_duration == timedelta(weeks=4)


def test_priority_ordering_and_labels() -> None:
    assert Priority.LOW < Priority.MEDIUM < Priority.HIGH < Priority.CRITICAL
    assert sorted([Priority.CRITICAL, Priority.LOW, Priority.HIGH]) == [Priority.LOW, Priority.HIGH, Priority.CRITICAL]
    assert Priority.CRITICAL.label == "Critical"


def test_story_status_board_shifts() -> None:
    assert StoryStatus.TODO.shifted("right") is StoryStatus.IN_PROGRESS
    assert StoryStatus.IN_PROGRESS.shifted("left") is StoryStatus.TODO
    assert StoryStatus.IN_PROGRESS.shifted("right") is StoryStatus.DONE
    assert StoryStatus.DONE.shifted("right") is None
    assert StoryStatus.TODO.shifted("left") is None
    assert [s.column_order for s in StoryStatus] == [0, 1, 2]


def test_sprint_state_machine_has_terminal_states() -> None:
    assert SPRINT_STATUS_TRANSITIONS[SprintStatus.PLANNING] == {SprintStatus.ACTIVE, SprintStatus.CANCELLED}
    assert SPRINT_STATUS_TRANSITIONS[SprintStatus.ACTIVE] == {SprintStatus.COMPLETED, SprintStatus.CANCELLED}
    assert SprintStatus.COMPLETED.is_terminal
    assert SprintStatus.CANCELLED.is_terminal
    assert not SprintStatus.PLANNING.is_terminal
    sprint = Sprint(name="S1")
    assert sprint.can_transition_to(SprintStatus.ACTIVE)
    assert not sprint.can_transition_to(SprintStatus.COMPLETED)


def test_sprint_progress_and_duration() -> None:
    start = datetime(2026, 1, 5, tzinfo=UTC)
    sprint = Sprint(
        name="S1",
        start_date=start,
        end_date=start + timedelta(days=10),
        stories=[
            UserStory(title="a", story_points=5, status=StoryStatus.DONE),
            UserStory(title="b", story_points=3, status=StoryStatus.IN_PROGRESS),
            UserStory(title="c", story_points=2),
        ],
    )
    assert sprint.total_story_points == 10
    assert sprint.completed_story_points == 5
    assert sprint.progress_percentage == 50.0
    assert sprint.duration_days == 10
    assert sprint.days_passed(start + timedelta(days=3, hours=2)) == 3
    assert sprint.days_passed(start + timedelta(days=40)) == 10
    assert sprint.days_passed(start - timedelta(days=2)) == 0
    assert [s.title for s in sprint.todo_stories] == ["c"]


def test_sprint_without_dates_defaults_to_two_weeks() -> None:
    sprint = Sprint(name="S1")
    assert sprint.duration_days == 14
    assert sprint.days_passed() == 0
    assert sprint.progress_percentage == 0.0


def test_member_initials() -> None:
    assert TeamMember(name="Sarah Jane Johnson").initials == "SJ"
    assert TeamMember(name="mike").initials == "MI"


def test_criteria_progress() -> None:
    story = UserStory.model_validate(
        {
            "title": "Login",
            "acceptanceCriteria": [
                {"description": "one", "isCompleted": True},
                {"description": "two"},
            ],
        }
    )
    assert story.completed_criteria_count == 1
    assert story.criteria_progress == 0.5
    assert UserStory(title="empty").criteria_progress == 0.0


def test_naive_timestamps_are_treated_as_utc() -> None:
    story = UserStory(title="x", created_at=datetime(2026, 3, 1, 12, 0))
    assert story.created_at == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    shifted = UserStory(title="y", created_at=datetime(2026, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2))))
    assert shifted.created_at.utcoffset() == timedelta(0)
    assert shifted.created_at.hour == 12


def test_wire_names_are_camel_case() -> None:
    dumped = Project(name="Alpha").model_dump(by_alias=True)
    assert "sprintDurationWeeks" in dumped
    assert "createdAt" in dumped
    story = UserStory(title="x").model_dump(by_alias=True)
    assert {"storyPoints", "assigneeIds", "sprintId", "acceptanceCriteria"} <= story.keys()


def test_project_identity_and_revision() -> None:
    project = Project(name="Alpha")
    renamed = project.model_copy(update={"name": "Beta"})
    assert project.same_identity(renamed)
    assert project.same_revision(renamed)
    bumped = project.model_copy(update={"updated_at": project.updated_at + timedelta(seconds=1)})
    assert project.same_identity(bumped)
    assert not project.same_revision(bumped)
    assert not project.same_identity(Project(name="Alpha"))


def test_find_story_reports_container() -> None:
    sprint = Sprint(name="S1")
    in_sprint = UserStory(title="s", sprint_id=sprint.id)
    sprint.stories = [in_sprint]
    in_backlog = UserStory(title="b")
    project = Project(name="Alpha", sprints=[sprint], backlog=[in_backlog])
    assert project.find_story(in_backlog.id) == (in_backlog, None)
    story, container = project.find_story(in_sprint.id)
    assert story is in_sprint and container is sprint
    assert project.find_story(Sprint(name="x").id) is None


def test_check_invariants_accepts_consistent_project() -> None:
    sprint = Sprint(name="S1", status=SprintStatus.ACTIVE)
    sprint.stories = [UserStory(title="s", sprint_id=sprint.id)]
    check_invariants(Project(name="Alpha", sprints=[sprint], backlog=[UserStory(title="b")]))


def test_check_invariants_rejects_two_active_sprints() -> None:
    project = Project(
        name="Alpha",
        sprints=[Sprint(name="A", status=SprintStatus.ACTIVE), Sprint(name="B", status=SprintStatus.ACTIVE)],
    )
    with pytest.raises(InvariantViolation, match="active sprints"):
        check_invariants(project)


def test_check_invariants_rejects_story_in_two_places() -> None:
    sprint = Sprint(name="S1")
    story = UserStory(title="dup", sprint_id=sprint.id)
    sprint.stories = [story]
    project = Project(name="Alpha", sprints=[sprint], backlog=[story.model_copy(update={"sprint_id": None})])
    with pytest.raises(InvariantViolation, match="more than one place"):
        check_invariants(project)


def test_check_invariants_rejects_dangling_back_references() -> None:
    sprint = Sprint(name="S1")
    with pytest.raises(InvariantViolation):
        check_invariants(Project(name="Alpha", backlog=[UserStory(title="b", sprint_id=sprint.id)]))
    sprint.stories = [UserStory(title="s")]
    with pytest.raises(InvariantViolation):
        check_invariants(Project(name="Alpha", sprints=[sprint]))
