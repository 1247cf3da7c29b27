from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime, timedelta
from enum import Enum, IntEnum
from typing import Annotated, Any, Literal
from uuid import UUID, uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .errors import InvariantViolation

VALID_STORY_POINTS: frozenset[int] = frozenset({1, 2, 3, 5, 8, 13, 21})
MIN_SPRINT_WEEKS = 1
MAX_SPRINT_WEEKS = 4
DEFAULT_SPRINT_DAYS = 14

BoardDirection = Literal["left", "right"]


def utc_now() -> datetime:
    return datetime.now(UTC)


def _ensure_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


Timestamp = Annotated[datetime, AfterValidator(_ensure_utc)]


class Priority(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()


class StoryStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    DONE = "Done"

    @property
    def column_order(self) -> int:
        return _BOARD_COLUMNS.index(self)

    def shifted(self, direction: BoardDirection) -> "StoryStatus | None":
        """Return the neighbouring board column, or None at the board edge."""
        step = 1 if direction == "right" else -1
        index = self.column_order + step
        if 0 <= index < len(_BOARD_COLUMNS):
            return _BOARD_COLUMNS[index]
        return None


_BOARD_COLUMNS: tuple[StoryStatus, ...] = (StoryStatus.TODO, StoryStatus.IN_PROGRESS, StoryStatus.DONE)


class SprintStatus(str, Enum):
    PLANNING = "Planning"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return not SPRINT_STATUS_TRANSITIONS[self]


SPRINT_STATUS_TRANSITIONS: dict[SprintStatus, frozenset[SprintStatus]] = {
    SprintStatus.PLANNING: frozenset({SprintStatus.ACTIVE, SprintStatus.CANCELLED}),
    SprintStatus.ACTIVE: frozenset({SprintStatus.COMPLETED, SprintStatus.CANCELLED}),
    SprintStatus.COMPLETED: frozenset(),
    SprintStatus.CANCELLED: frozenset(),
}


class ScrumRole(str, Enum):
    PRODUCT_OWNER = "Product Owner"
    SCRUM_MASTER = "Scrum Master"
    DEVELOPER = "Developer"
    DESIGNER = "Designer"
    TESTER = "QA Tester"


class ScrumeModel(BaseModel):
    """Shared config: camelCase wire names, validated edits, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
    )


class AcceptanceCriterion(ScrumeModel):
    id: UUID = Field(default_factory=uuid4)
    description: str
    is_completed: bool = False
    created_at: Timestamp = Field(default_factory=utc_now)


class TeamMember(ScrumeModel):
    id: UUID = Field(default_factory=uuid4)
    name: str
    email: str = ""
    role: ScrumRole = ScrumRole.DEVELOPER
    avatar_color: str = "007AFF"

    @property
    def initials(self) -> str:
        parts = self.name.split()
        if len(parts) >= 2:
            return f"{parts[0][:1]}{parts[-1][:1]}".upper()
        return self.name.strip()[:2].upper()


class UserStory(ScrumeModel):
    id: UUID = Field(default_factory=uuid4)
    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    story_points: int = 1
    status: StoryStatus = StoryStatus.TODO
    assignee_ids: list[UUID] = Field(default_factory=list)
    sprint_id: UUID | None = None
    acceptance_criteria: list[AcceptanceCriterion] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    created_at: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp = Field(default_factory=utc_now)

    @field_validator("story_points", mode="before")
    @classmethod
    def _coerce_story_points(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int) or value not in VALID_STORY_POINTS:
            return 1
        return value

    @property
    def completed_criteria_count(self) -> int:
        return sum(1 for criterion in self.acceptance_criteria if criterion.is_completed)

    @property
    def criteria_progress(self) -> float:
        if not self.acceptance_criteria:
            return 0.0
        return self.completed_criteria_count / len(self.acceptance_criteria)


class Sprint(ScrumeModel):
    id: UUID = Field(default_factory=uuid4)
    name: str
    goal: str = ""
    start_date: Timestamp | None = None
    end_date: Timestamp | None = None
    status: SprintStatus = SprintStatus.PLANNING
    stories: list[UserStory] = Field(default_factory=list)

    @property
    def total_story_points(self) -> int:
        return sum(story.story_points for story in self.stories)

    @property
    def completed_story_points(self) -> int:
        return sum(story.story_points for story in self.done_stories)

    @property
    def progress_percentage(self) -> float:
        total = self.total_story_points
        if total == 0:
            return 0.0
        return self.completed_story_points / total * 100

    @property
    def todo_stories(self) -> list[UserStory]:
        return [story for story in self.stories if story.status == StoryStatus.TODO]

    @property
    def in_progress_stories(self) -> list[UserStory]:
        return [story for story in self.stories if story.status == StoryStatus.IN_PROGRESS]

    @property
    def done_stories(self) -> list[UserStory]:
        return [story for story in self.stories if story.status == StoryStatus.DONE]

    @property
    def duration_days(self) -> int:
        if self.start_date is None or self.end_date is None:
            return DEFAULT_SPRINT_DAYS
        return (self.end_date - self.start_date).days

    def days_passed(self, now: datetime | None = None) -> int:
        """Whole days since the sprint started, clamped to the sprint length."""
        if self.start_date is None:
            return 0
        current = now if now is not None else utc_now()
        days = (current - self.start_date).days
        return max(0, min(days, self.duration_days))

    def can_transition_to(self, status: SprintStatus) -> bool:
        return status in SPRINT_STATUS_TRANSITIONS[self.status]


class Project(ScrumeModel):
    id: UUID = Field(default_factory=uuid4)
    name: str
    description: str = ""
    sprint_duration_weeks: int = 2
    members: list[TeamMember] = Field(default_factory=list)
    sprints: list[Sprint] = Field(default_factory=list)
    backlog: list[UserStory] = Field(default_factory=list)
    created_at: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp = Field(default_factory=utc_now)

    @field_validator("sprint_duration_weeks")
    @classmethod
    def _clamp_duration(cls, value: int) -> int:
        return min(max(value, MIN_SPRINT_WEEKS), MAX_SPRINT_WEEKS)

    @property
    def sprint_duration(self) -> timedelta:
        return timedelta(weeks=self.sprint_duration_weeks)

    @property
    def active_sprint(self) -> Sprint | None:
        return next((sprint for sprint in self.sprints if sprint.status == SprintStatus.ACTIVE), None)

    @property
    def total_backlog_points(self) -> int:
        return sum(story.story_points for story in self.backlog)

    def same_identity(self, other: "Project") -> bool:
        return self.id == other.id

    def same_revision(self, other: "Project") -> bool:
        """True when both values describe the same project at the same update."""
        return self.id == other.id and self.updated_at == other.updated_at

    def find_sprint(self, sprint_id: UUID) -> Sprint | None:
        return next((sprint for sprint in self.sprints if sprint.id == sprint_id), None)

    def find_member(self, member_id: UUID) -> TeamMember | None:
        return next((member for member in self.members if member.id == member_id), None)

    def find_story(self, story_id: UUID) -> tuple[UserStory, Sprint | None] | None:
        """Locate a story and the sprint holding it (None when it is in the backlog)."""
        for story in self.backlog:
            if story.id == story_id:
                return story, None
        for sprint in self.sprints:
            for story in sprint.stories:
                if story.id == story_id:
                    return story, sprint
        return None

    def all_story_ids(self) -> list[UUID]:
        ids = [story.id for story in self.backlog]
        for sprint in self.sprints:
            ids.extend(story.id for story in sprint.stories)
        return ids


def check_invariants(project: Project) -> None:
    """Raise InvariantViolation if *project* breaks a structural rule.

    Checks the single-active-sprint rule and that every story lives in
    exactly one container with a matching ``sprint_id`` back-reference.
    """
    active = [sprint.name for sprint in project.sprints if sprint.status == SprintStatus.ACTIVE]
    if len(active) > 1:
        raise InvariantViolation(f"project {project.id} has {len(active)} active sprints: {active}")

    duplicates = [story_id for story_id, count in Counter(project.all_story_ids()).items() if count > 1]
    if duplicates:
        raise InvariantViolation(f"project {project.id} holds stories in more than one place: {duplicates}")

    for story in project.backlog:
        if story.sprint_id is not None:
            raise InvariantViolation(f"backlog story {story.id} still references sprint {story.sprint_id}")
    for sprint in project.sprints:
        for story in sprint.stories:
            if story.sprint_id != sprint.id:
                raise InvariantViolation(
                    f"story {story.id} in sprint {sprint.id} references sprint {story.sprint_id}"
                )
