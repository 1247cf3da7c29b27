"""Burndown and velocity figures derived from a project's sprints.

These are the numbers behind the reports screen; drawing them is left to
the view layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .models import Project, Sprint, SprintStatus

VELOCITY_WINDOW = 6
TREND_THRESHOLD = 2


@dataclass(frozen=True)
class BurndownPoint:
    day: int
    points: float


@dataclass(frozen=True)
class VelocityPoint:
    sprint_name: str
    completed_points: int


class VelocityTrend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"

    @property
    def label(self) -> str:
        return {"up": "Improving", "down": "Declining", "stable": "Stable"}[self.value]


@dataclass(frozen=True)
class OverallStats:
    completed_sprints: int
    total_points_completed: int
    total_stories_completed: int
    average_velocity: float


def ideal_burndown(sprint: Sprint) -> list[BurndownPoint]:
    """Straight line from total points on day 0 to zero on the last day."""
    total = sprint.total_story_points
    days = max(sprint.duration_days, 1)
    return [BurndownPoint(day=day, points=max(0.0, total * (1.0 - day / days))) for day in range(days + 1)]


def actual_burndown(sprint: Sprint, now: datetime | None = None) -> list[BurndownPoint]:
    # Only the start and the current remaining work are known; no daily history is kept.
    points = [BurndownPoint(day=0, points=float(sprint.total_story_points))]
    days_passed = sprint.days_passed(now)
    if days_passed > 0:
        remaining = sprint.total_story_points - sprint.completed_story_points
        points.append(BurndownPoint(day=days_passed, points=float(remaining)))
    return points


def completed_sprints(project: Project) -> list[Sprint]:
    return [sprint for sprint in project.sprints if sprint.status == SprintStatus.COMPLETED]


def velocity_points(project: Project, limit: int = VELOCITY_WINDOW) -> list[VelocityPoint]:
    """Completed points for the most recent *limit* completed sprints, oldest first."""
    recent = completed_sprints(project)[-limit:] if limit > 0 else []
    return [VelocityPoint(sprint_name=sprint.name[:10], completed_points=sprint.completed_story_points) for sprint in recent]


def average_velocity(project: Project) -> float:
    done = completed_sprints(project)
    if not done:
        return 0.0
    return sum(sprint.completed_story_points for sprint in done) / len(done)


def velocity_trend(project: Project) -> VelocityTrend:
    data = velocity_points(project)
    if len(data) < 2:
        return VelocityTrend.STABLE
    last, previous = data[-1].completed_points, data[-2].completed_points
    if last > previous + TREND_THRESHOLD:
        return VelocityTrend.UP
    if last < previous - TREND_THRESHOLD:
        return VelocityTrend.DOWN
    return VelocityTrend.STABLE


def overall_stats(project: Project) -> OverallStats:
    # Points and stories count every sprint's Done work, not only completed sprints.
    finished = len(completed_sprints(project))
    total_points = sum(sprint.completed_story_points for sprint in project.sprints)
    return OverallStats(
        completed_sprints=finished,
        total_points_completed=total_points,
        total_stories_completed=sum(len(sprint.done_stories) for sprint in project.sprints),
        average_velocity=total_points / finished if finished else 0.0,
    )
