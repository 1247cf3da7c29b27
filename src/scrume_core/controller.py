from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterable, Iterator, Sequence
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from .canonical import fingerprint
from .document_store import EncryptedDocumentStore, StorageInfo
from .errors import InvalidTransitionError, NotFoundError, StorageWriteError, ValidationError
from .models import (
    SPRINT_STATUS_TRANSITIONS,
    AcceptanceCriterion,
    BoardDirection,
    Priority,
    Project,
    ScrumRole,
    Sprint,
    SprintStatus,
    StoryStatus,
    TeamMember,
    UserStory,
    check_invariants,
    utc_now,
)
from .samples import sample_projects

logger = logging.getLogger(__name__)


class ProjectStateController:
    """In-memory authority over the loaded project collection.

    Every mutation follows the same cycle: copy the current collection,
    apply the change to the copy, check the touched project's invariants,
    save the whole collection once, then reload it from the store. A
    ``ValidationError`` leaves ``projects`` untouched and is raised to the
    caller. A ``StorageWriteError`` is logged and recorded in
    ``last_error`` instead of raised; ``projects`` then keeps the attempted
    collection even though disk still holds the previous one.

    Operations are serialized with a re-entrant lock, but callers are still
    expected to drive the controller from a single thread.
    """

    def __init__(
        self,
        store: EncryptedDocumentStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        default_sprint_weeks: int = 2,
    ) -> None:
        self.store = store
        self.default_sprint_weeks = default_sprint_weeks
        self._clock = clock
        self._lock = threading.RLock()
        self.projects: list[Project] = []
        self.selected_project_id: UUID | None = None
        self.is_loading = False
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def load(self) -> list[Project]:
        with self._lock:
            self.is_loading = True
            try:
                self.projects = self.store.load()
            finally:
                self.is_loading = False
            return self.projects

    @property
    def has_projects(self) -> bool:
        return bool(self.projects)

    @property
    def selected_project(self) -> Project | None:
        if self.selected_project_id is None:
            return None
        return next((p for p in self.projects if p.id == self.selected_project_id), None)

    @property
    def state_fingerprint(self) -> str:
        """Digest of the loaded collection; changes whenever any field does."""
        return fingerprint(self.projects)

    def get_project(self, project_id: UUID) -> Project:
        return _require_project(self.projects, project_id)

    def select_project(self, project_id: UUID | None) -> Project | None:
        with self._mutation():
            if project_id is None:
                self.selected_project_id = None
                return None
            project = _require_project(self.projects, project_id)
            self.selected_project_id = project.id
            return project

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(
        self,
        name: str,
        description: str = "",
        sprint_duration_weeks: int | None = None,
    ) -> Project:
        """Create a project with fresh id and timestamps and append it.

        Raises:
            ValidationError: If *name* is empty after trimming.
        """
        with self._mutation():
            trimmed = _require_text(name, "project name")
            now = self._now()
            project = Project(
                name=trimmed,
                description=description,
                sprint_duration_weeks=(
                    sprint_duration_weeks if sprint_duration_weeks is not None else self.default_sprint_weeks
                ),
                created_at=now,
                updated_at=now,
            )
            projects = self._working_copy()
            projects.append(project)
            self._commit(projects, project, now)
            return project

    def add_project(self, project: Project) -> Project:
        """Append an already-built project, e.g. one restored from elsewhere."""
        with self._mutation():
            projects = self._working_copy()
            if any(existing.id == project.id for existing in projects):
                raise ValidationError(f"project {project.id} already exists")
            added = Project.model_validate(project.model_dump())
            projects.append(added)
            self._commit(projects, added, self._now())
            return added

    def update_project(self, project: Project) -> Project | None:
        """Replace the stored project with the same id.

        Returns None, without writing, when no project has that id. The
        replacement is re-validated and its invariants checked. Sprint
        status edits must follow the sprint state machine, and no sprint
        becomes Active here; use :meth:`start_sprint` for that.

        Raises:
            InvalidTransitionError: If a sprint status edit is not allowed.
        """
        with self._mutation():
            projects = self._working_copy()
            index = _index_of(projects, project.id)
            if index is None:
                logger.debug("update_project: %s not loaded, nothing to do", project.id)
                self.load()
                return None
            replacement = Project.model_validate(project.model_dump())
            _require_sprint_edits(projects[index], replacement)
            projects[index] = replacement
            self._commit(projects, replacement, self._now())
            return replacement

    def delete_project(self, project_id: UUID) -> None:
        """Remove a project and everything it owns."""
        with self._mutation():
            projects = self._working_copy()
            _require_project(projects, project_id)
            remaining = [p for p in projects if p.id != project_id]
            if self.selected_project_id == project_id:
                self.selected_project_id = None
            self._commit(remaining, None, self._now())

    # ------------------------------------------------------------------
    # Sprint lifecycle
    # ------------------------------------------------------------------

    def create_sprint(
        self,
        project_id: UUID,
        name: str,
        goal: str = "",
        story_ids: Sequence[UUID] = (),
        *,
        start_now: bool = False,
    ) -> Sprint:
        """Add a Planning sprint, pulling the given backlog stories into it.

        With *start_now* the sprint is started in the same write, applying
        the same rules as :meth:`start_sprint`.
        """
        with self._mutation():
            trimmed = _require_text(name, "sprint name")
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            now = self._now()
            sprint = Sprint(name=trimmed, goal=goal)
            project.sprints.append(sprint)
            _pull_from_backlog(project, sprint, story_ids)
            if start_now:
                _activate(project, sprint, now, carry_over=False)
            self._commit(projects, project, now)
            return sprint

    def update_sprint(
        self,
        project_id: UUID,
        sprint_id: UUID,
        *,
        name: str | None = None,
        goal: str | None = None,
        start_date: datetime | None = None,
    ) -> Sprint:
        """Edit a sprint's name, goal or, while it is still Planning, its dates.

        A custom *start_date* sets the end date one sprint duration later.
        Status is never changed here.
        """
        with self._mutation():
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            sprint = _require_sprint(project, sprint_id)
            if name is not None:
                sprint.name = _require_text(name, "sprint name")
            if goal is not None:
                sprint.goal = goal
            if start_date is not None:
                if sprint.status != SprintStatus.PLANNING:
                    raise ValidationError(
                        f"dates of sprint {sprint.id} can only change while Planning (status={sprint.status.value})"
                    )
                sprint.start_date = start_date
                sprint.end_date = sprint.start_date + project.sprint_duration
            self._commit(projects, project, self._now())
            return sprint

    def start_sprint(self, project_id: UUID, sprint_id: UUID, *, carry_over: bool = False) -> Sprint:
        """Make *sprint_id* the project's only Active sprint.

        Any other Active sprint is completed first, with its end date set to
        now; with *carry_over* its unfinished stories also return to the
        backlog. The target gets start date now and end date now plus the
        project's sprint duration unless those are already set. Everything
        is persisted as one write.

        Raises:
            NotFoundError: If the project or sprint does not exist.
            InvalidTransitionError: If the sprint is not Planning.
        """
        with self._mutation():
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            sprint = _require_sprint(project, sprint_id)
            _require_transition(sprint, SprintStatus.ACTIVE)
            now = self._now()
            _activate(project, sprint, now, carry_over=carry_over)
            self._commit(projects, project, now)
            return sprint

    def complete_sprint(self, project_id: UUID, sprint_id: UUID) -> Sprint:
        """Complete an Active sprint; unfinished stories go back to the backlog as To Do."""
        with self._mutation():
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            sprint = _require_sprint(project, sprint_id)
            _require_transition(sprint, SprintStatus.COMPLETED)
            sprint.status = SprintStatus.COMPLETED
            _return_unfinished(project, sprint)
            self._commit(projects, project, self._now())
            return sprint

    def cancel_sprint(self, project_id: UUID, sprint_id: UUID) -> Sprint:
        """Cancel a sprint; all of its stories go back to the backlog as To Do."""
        with self._mutation():
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            sprint = _require_sprint(project, sprint_id)
            _require_transition(sprint, SprintStatus.CANCELLED)
            sprint.status = SprintStatus.CANCELLED
            _return_to_backlog(project, sprint, list(sprint.stories), reset_status=True)
            self._commit(projects, project, self._now())
            return sprint

    def delete_sprint(self, project_id: UUID, sprint_id: UUID) -> None:
        """Delete a Planning sprint; its stories return to the backlog with status kept."""
        with self._mutation():
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            sprint = _require_sprint(project, sprint_id)
            if sprint.status != SprintStatus.PLANNING:
                raise ValidationError(
                    f"only Planning sprints can be deleted; {sprint.name!r} is {sprint.status.value}"
                )
            _return_to_backlog(project, sprint, list(sprint.stories), reset_status=False)
            project.sprints = [s for s in project.sprints if s.id != sprint.id]
            self._commit(projects, project, self._now())

    def move_stories_to_sprint(self, project_id: UUID, story_ids: Sequence[UUID], sprint_id: UUID) -> Sprint:
        """Move backlog stories into a sprint, in the order given.

        Ids that are not in the backlog are skipped.
        """
        with self._mutation():
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            sprint = _require_sprint(project, sprint_id)
            if sprint.status.is_terminal:
                raise ValidationError(f"cannot add stories to {sprint.status.value.lower()} sprint {sprint.name!r}")
            moved = _pull_from_backlog(project, sprint, story_ids)
            logger.debug("Moved %d of %d stories into sprint %s", moved, len(story_ids), sprint.id)
            self._commit(projects, project, self._now())
            return sprint

    # ------------------------------------------------------------------
    # Board
    # ------------------------------------------------------------------

    def move_story_status(
        self,
        story_id: UUID,
        new_status: StoryStatus | str,
        project_id: UUID | None = None,
    ) -> UserStory:
        """Set a story's status wherever it currently lives."""
        with self._mutation():
            status = _coerce_status(new_status)
            projects = self._working_copy()
            project, story = _locate_story(projects, story_id, project_id)
            now = self._now()
            story.status = status
            story.updated_at = now
            self._commit(projects, project, now)
            return story

    def nudge_story(self, story_id: UUID, direction: BoardDirection, project_id: UUID | None = None) -> UserStory:
        """Shift a story one board column left or right; no-op at the edges."""
        with self._mutation():
            if direction not in ("left", "right"):
                raise ValidationError(f"direction must be 'left' or 'right', got {direction!r}")
            project, story = _locate_story(self.projects, story_id, project_id)
            target = story.status.shifted(direction)
            if target is None:
                return story
            return self.move_story_status(story_id, target, project.id)

    # ------------------------------------------------------------------
    # Stories
    # ------------------------------------------------------------------

    def add_story(
        self,
        project_id: UUID,
        title: str,
        description: str = "",
        priority: Priority = Priority.MEDIUM,
        story_points: int = 1,
        tags: Iterable[str] = (),
        assignee_ids: Iterable[UUID] = (),
    ) -> UserStory:
        """Create a backlog story. Invalid *story_points* are stored as 1."""
        with self._mutation():
            trimmed = _require_text(title, "story title")
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            now = self._now()
            story = UserStory(
                title=trimmed,
                description=description,
                priority=priority,
                story_points=story_points,
                tags=list(tags),
                assignee_ids=list(assignee_ids),
                created_at=now,
                updated_at=now,
            )
            project.backlog.append(story)
            self._commit(projects, project, now)
            return story

    def update_story(self, project_id: UUID, story: UserStory) -> UserStory:
        """Replace a story in place, wherever it lives.

        The story stays in its current container: ``sprint_id`` and
        ``created_at`` are taken from the stored copy, ``updated_at`` is
        stamped, and story points are re-validated.
        """
        with self._mutation():
            _require_text(story.title, "story title")
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            found = project.find_story(story.id)
            if found is None:
                raise NotFoundError(f"story {story.id} not found in project {project_id}")
            existing, container = found
            now = self._now()
            replacement = UserStory.model_validate(
                {
                    **story.model_dump(),
                    "title": story.title.strip(),
                    "sprint_id": container.id if container is not None else None,
                    "created_at": existing.created_at,
                    "updated_at": now,
                }
            )
            stories = container.stories if container is not None else project.backlog
            stories[_index_of(stories, story.id)] = replacement
            self._commit(projects, project, now)
            return replacement

    def delete_story(self, project_id: UUID, story_id: UUID) -> None:
        with self._mutation():
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            found = project.find_story(story_id)
            if found is None:
                raise NotFoundError(f"story {story_id} not found in project {project_id}")
            _, container = found
            if container is None:
                project.backlog = [s for s in project.backlog if s.id != story_id]
            else:
                container.stories = [s for s in container.stories if s.id != story_id]
            self._commit(projects, project, self._now())

    def move_backlog_story(self, project_id: UUID, story_id: UUID, new_index: int) -> None:
        """Reorder the backlog; *new_index* is clamped to the list bounds."""
        with self._mutation():
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            index = _index_of(project.backlog, story_id)
            if index is None:
                raise NotFoundError(f"story {story_id} is not in the backlog of project {project_id}")
            story = project.backlog.pop(index)
            target = min(max(new_index, 0), len(project.backlog))
            project.backlog.insert(target, story)
            self._commit(projects, project, self._now())

    def toggle_assignee(self, project_id: UUID, story_id: UUID, member_id: UUID) -> UserStory:
        """Add *member_id* to the story's assignees, or remove it if present."""
        with self._mutation():
            projects = self._working_copy()
            project, story = _locate_story(projects, story_id, project_id)
            if member_id in story.assignee_ids:
                story.assignee_ids = [m for m in story.assignee_ids if m != member_id]
            else:
                story.assignee_ids = [*story.assignee_ids, member_id]
            now = self._now()
            story.updated_at = now
            self._commit(projects, project, now)
            return story

    # ------------------------------------------------------------------
    # Acceptance criteria
    # ------------------------------------------------------------------

    def add_criterion(self, project_id: UUID, story_id: UUID, description: str) -> AcceptanceCriterion:
        with self._mutation():
            trimmed = _require_text(description, "acceptance criterion")
            projects = self._working_copy()
            project, story = _locate_story(projects, story_id, project_id)
            now = self._now()
            criterion = AcceptanceCriterion(description=trimmed, created_at=now)
            story.acceptance_criteria.append(criterion)
            story.updated_at = now
            self._commit(projects, project, now)
            return criterion

    def toggle_criterion(self, project_id: UUID, story_id: UUID, criterion_id: UUID) -> AcceptanceCriterion:
        with self._mutation():
            projects = self._working_copy()
            project, story = _locate_story(projects, story_id, project_id)
            criterion = next((c for c in story.acceptance_criteria if c.id == criterion_id), None)
            if criterion is None:
                raise NotFoundError(f"criterion {criterion_id} not found on story {story_id}")
            now = self._now()
            criterion.is_completed = not criterion.is_completed
            story.updated_at = now
            self._commit(projects, project, now)
            return criterion

    def delete_criterion(self, project_id: UUID, story_id: UUID, criterion_id: UUID) -> None:
        with self._mutation():
            projects = self._working_copy()
            project, story = _locate_story(projects, story_id, project_id)
            if _index_of(story.acceptance_criteria, criterion_id) is None:
                raise NotFoundError(f"criterion {criterion_id} not found on story {story_id}")
            now = self._now()
            story.acceptance_criteria = [c for c in story.acceptance_criteria if c.id != criterion_id]
            story.updated_at = now
            self._commit(projects, project, now)

    # ------------------------------------------------------------------
    # Team members
    # ------------------------------------------------------------------

    def add_member(
        self,
        project_id: UUID,
        name: str,
        email: str = "",
        role: ScrumRole = ScrumRole.DEVELOPER,
        avatar_color: str = "007AFF",
    ) -> TeamMember:
        with self._mutation():
            trimmed = _require_text(name, "member name")
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            member = TeamMember(name=trimmed, email=email.strip(), role=role, avatar_color=avatar_color)
            project.members.append(member)
            self._commit(projects, project, self._now())
            return member

    def update_member(self, project_id: UUID, member: TeamMember) -> TeamMember:
        with self._mutation():
            _require_text(member.name, "member name")
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            index = _index_of(project.members, member.id)
            if index is None:
                raise NotFoundError(f"member {member.id} not found in project {project_id}")
            replacement = TeamMember.model_validate(member.model_dump())
            project.members[index] = replacement
            self._commit(projects, project, self._now())
            return replacement

    def remove_member(self, project_id: UUID, member_id: UUID) -> None:
        """Remove a member. Stories keep any assignee ids that pointed at them."""
        with self._mutation():
            projects = self._working_copy()
            project = _require_project(projects, project_id)
            if project.find_member(member_id) is None:
                raise NotFoundError(f"member {member_id} not found in project {project_id}")
            project.members = [m for m in project.members if m.id != member_id]
            self._commit(projects, project, self._now())

    # ------------------------------------------------------------------
    # Data utilities
    # ------------------------------------------------------------------

    def export_data(self) -> bytes:
        return self.store.export_bytes()

    def import_data(self, data: bytes) -> bool:
        """Replace everything with a plaintext backup; returns False if it was rejected."""
        with self._mutation():
            ok = self.store.import_bytes(data)
            if not ok:
                self.last_error = "import failed: data could not be decoded or saved"
            self.load()
            return ok

    def load_sample_data(self) -> None:
        with self._mutation():
            self._commit(sample_projects(self._now()), None, self._now())

    def clear_all_data(self) -> None:
        with self._mutation():
            try:
                self.store.clear()
            except StorageWriteError as exc:
                logger.error("Error clearing data: %s", exc)
                self.last_error = str(exc)
            self.selected_project_id = None
            self.load()

    def storage_info(self) -> StorageInfo:
        return self.store.storage_info()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        with self._lock:
            self.last_error = None
            try:
                yield
            except ValidationError as exc:
                self.last_error = str(exc)
                raise
            except PydanticValidationError as exc:
                self.last_error = f"invalid input: {exc}"
                raise ValidationError(self.last_error) from exc

    def _working_copy(self) -> list[Project]:
        return [project.model_copy(deep=True) for project in self.projects]

    def _commit(self, projects: list[Project], touched: Project | None, now: datetime) -> bool:
        """Validate, persist and reload. Returns False if the save failed."""
        if touched is not None:
            touched.updated_at = now
            check_invariants(touched)
        try:
            self.store.save(projects)
        except StorageWriteError as exc:
            logger.error("Error saving projects: %s", exc)
            self.last_error = str(exc)
            self.projects = projects
            return False
        self.load()
        return True


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------

def _index_of(items: Sequence, item_id: UUID) -> int | None:
    return next((index for index, item in enumerate(items) if item.id == item_id), None)


def _require_text(value: str, label: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{label} must not be empty")
    return trimmed


def _require_project(projects: Sequence[Project], project_id: UUID) -> Project:
    project = next((p for p in projects if p.id == project_id), None)
    if project is None:
        raise NotFoundError(f"project {project_id} not found")
    return project


def _require_sprint(project: Project, sprint_id: UUID) -> Sprint:
    sprint = project.find_sprint(sprint_id)
    if sprint is None:
        raise NotFoundError(f"sprint {sprint_id} not found in project {project.id}")
    return sprint


def _require_transition(sprint: Sprint, target: SprintStatus) -> None:
    if not sprint.can_transition_to(target):
        raise InvalidTransitionError(
            f"Illegal sprint status transition for {sprint.name!r}: {sprint.status.value} -> {target.value}"
        )


def _require_sprint_edits(stored: Project, replacement: Project) -> None:
    for sprint in replacement.sprints:
        previous = stored.find_sprint(sprint.id)
        before = previous.status if previous is not None else SprintStatus.PLANNING
        if sprint.status == before:
            continue
        if sprint.status == SprintStatus.ACTIVE:
            raise InvalidTransitionError(
                f"sprint {sprint.name!r} can only become Active through start_sprint"
            )
        if sprint.status not in SPRINT_STATUS_TRANSITIONS[before]:
            raise InvalidTransitionError(
                f"Illegal sprint status transition for {sprint.name!r}: {before.value} -> {sprint.status.value}"
            )


def _locate_story(
    projects: Sequence[Project],
    story_id: UUID,
    project_id: UUID | None,
) -> tuple[Project, UserStory]:
    candidates = [_require_project(projects, project_id)] if project_id is not None else projects
    for project in candidates:
        found = project.find_story(story_id)
        if found is not None:
            return project, found[0]
    raise NotFoundError(f"story {story_id} not found")


def _coerce_status(value: StoryStatus | str) -> StoryStatus:
    try:
        return StoryStatus(value)
    except ValueError as exc:
        raise ValidationError(f"unknown story status {value!r}") from exc


# ---------------------------------------------------------------------------
# Backlog <-> sprint moves
# ---------------------------------------------------------------------------

def _pull_from_backlog(project: Project, sprint: Sprint, story_ids: Iterable[UUID]) -> int:
    moved = 0
    for story_id in story_ids:
        index = _index_of(project.backlog, story_id)
        if index is None:
            continue
        story = project.backlog.pop(index)
        story.sprint_id = sprint.id
        sprint.stories.append(story)
        moved += 1
    return moved


def _return_to_backlog(project: Project, sprint: Sprint, stories: list[UserStory], *, reset_status: bool) -> None:
    leaving = {story.id for story in stories}
    sprint.stories = [story for story in sprint.stories if story.id not in leaving]
    for story in stories:
        story.sprint_id = None
        if reset_status:
            story.status = StoryStatus.TODO
        project.backlog.append(story)


def _return_unfinished(project: Project, sprint: Sprint) -> None:
    unfinished = [story for story in sprint.stories if story.status != StoryStatus.DONE]
    _return_to_backlog(project, sprint, unfinished, reset_status=True)


def _activate(project: Project, sprint: Sprint, now: datetime, *, carry_over: bool) -> None:
    for other in project.sprints:
        if other.id != sprint.id and other.status == SprintStatus.ACTIVE:
            other.status = SprintStatus.COMPLETED
            other.end_date = now
            if carry_over:
                _return_unfinished(project, other)
    sprint.status = SprintStatus.ACTIVE
    if sprint.start_date is None:
        sprint.start_date = now
    if sprint.end_date is None:
        sprint.end_date = now + project.sprint_duration
