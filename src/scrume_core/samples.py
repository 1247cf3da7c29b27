"""Demo project graph used by ``ProjectStateController.load_sample_data``."""

from __future__ import annotations

from datetime import datetime, timedelta

from .models import (
    AcceptanceCriterion,
    Priority,
    Project,
    ScrumRole,
    Sprint,
    SprintStatus,
    StoryStatus,
    TeamMember,
    UserStory,
    utc_now,
)


def _team() -> list[TeamMember]:
    return [
        TeamMember(name="John Smith", email="john@email.com", role=ScrumRole.PRODUCT_OWNER, avatar_color="FF6B6B"),
        TeamMember(name="Sarah Johnson", email="sarah@email.com", role=ScrumRole.SCRUM_MASTER, avatar_color="4ECDC4"),
        TeamMember(name="Mike Chen", email="mike@email.com", role=ScrumRole.DEVELOPER, avatar_color="45B7D1"),
        TeamMember(name="Emily Davis", email="emily@email.com", role=ScrumRole.DESIGNER, avatar_color="96CEB4"),
        TeamMember(name="Alex Wilson", email="alex@email.com", role=ScrumRole.TESTER, avatar_color="FFEAA7"),
    ]


def _sprint_stories(now: datetime) -> list[UserStory]:
    criteria = [
        AcceptanceCriterion(description="User can enter email and password", is_completed=True, created_at=now),
        AcceptanceCriterion(description="Validation shows for invalid input", is_completed=True, created_at=now),
        AcceptanceCriterion(description="Loading indicator shows while logging in", created_at=now),
    ]
    rows = [
        ("Create login screen", "As a user, I want to login", Priority.HIGH, 5, StoryStatus.DONE, []),
        ("Display project list", "As a user, I want to see projects", Priority.HIGH, 3, StoryStatus.IN_PROGRESS, ["UI", "Core"]),
        ("Create Scrum Board", "As a developer, I want a Kanban board", Priority.CRITICAL, 8, StoryStatus.IN_PROGRESS, ["Feature"]),
        ("Add team members", "As a PO, I want to add members", Priority.MEDIUM, 3, StoryStatus.TODO, []),
        ("Drag & Drop tasks", "As a user, I want to drag tasks", Priority.HIGH, 5, StoryStatus.TODO, ["UX"]),
    ]
    stories = [
        UserStory(
            title=title,
            description=description,
            priority=priority,
            story_points=points,
            status=status,
            tags=tags,
            created_at=now,
            updated_at=now,
        )
        for title, description, priority, points, status, tags in rows
    ]
    stories[0].acceptance_criteria = criteria
    return stories


def _backlog(now: datetime) -> list[UserStory]:
    return [
        UserStory(title="Dark Mode", description="Support dark mode", priority=Priority.LOW, story_points=2,
                  tags=["UI"], created_at=now, updated_at=now),
        UserStory(title="Export Report", description="Export sprint report", priority=Priority.MEDIUM, story_points=5,
                  tags=["Feature"], created_at=now, updated_at=now),
        UserStory(title="Burndown Chart", description="Show burndown chart", priority=Priority.LOW, story_points=8,
                  tags=["Analytics"], created_at=now, updated_at=now),
    ]


def sample_projects(now: datetime | None = None) -> list[Project]:
    """Build three demo projects; the first has a team, an active sprint and a backlog."""
    current = now if now is not None else utc_now()
    sprint = Sprint(
        name="Sprint 1",
        goal="Complete core features",
        start_date=current,
        end_date=current + timedelta(days=14),
        status=SprintStatus.ACTIVE,
        stories=_sprint_stories(current),
    )
    for story in sprint.stories:
        story.sprint_id = sprint.id

    return [
        Project(
            name="Scrume App",
            description="Scrum project management application",
            sprint_duration_weeks=2,
            members=_team(),
            sprints=[sprint],
            backlog=_backlog(current),
            created_at=current,
            updated_at=current,
        ),
        Project(name="E-Commerce App", description="Online shopping application", sprint_duration_weeks=3,
                created_at=current, updated_at=current),
        Project(name="Chat App", description="Messaging application", sprint_duration_weeks=1,
                created_at=current, updated_at=current),
    ]
