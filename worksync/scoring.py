"""
Rule-based task scoring and recommendations.

Everything here is a pure function of the tasks passed in and the current
time; nothing is persisted. Tasks may be ORM rows or any object exposing
the same attributes (priority, complexity, due_date, estimated_hours,
ai_priority_score).
"""
import math
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from .constants import TaskComplexity, TaskPriority
from .models import Recommendation, utcnow
from .validation import ValidationError


PRIORITY_WEIGHTS = {
    TaskPriority.LOW: 0.2,
    TaskPriority.MEDIUM: 0.5,
    TaskPriority.HIGH: 0.8,
    TaskPriority.CRITICAL: 1.0,
}
DEFAULT_PRIORITY_WEIGHT = 0.5
PRIORITY_FACTOR = 0.3

COMPLEXITY_ADJUSTMENTS = {
    TaskComplexity.SIMPLE: 0.1,
    TaskComplexity.MEDIUM: 0.0,
    TaskComplexity.COMPLEX: -0.1,
}

# (days until due, bonus), checked in order
DUE_DATE_BONUSES = [
    (1, 0.3),
    (3, 0.2),
    (7, 0.1),
]

BASE_SCORE = 0.5
QUICK_WIN_MAX_HOURS = 2
UNKNOWN_ESTIMATE_HOURS = 4

HIGH_PRIORITIES = (TaskPriority.HIGH, TaskPriority.CRITICAL)


def days_until(due_date: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until ``due_date``, rounded up (negative when overdue)."""
    now = now or utcnow()
    return math.ceil((due_date - now).total_seconds() / 86400)


def score(task, now: Optional[datetime] = None) -> float:
    """
    Compute the AI priority score of a task.

    Args:
        task: Task-like object
        now: Reference time (default: current UTC time)

    Returns:
        Score clamped to [0, 1]
    """
    value = BASE_SCORE
    value += PRIORITY_WEIGHTS.get(task.priority, DEFAULT_PRIORITY_WEIGHT) * PRIORITY_FACTOR

    if task.due_date:
        remaining = days_until(task.due_date, now)
        for threshold, bonus in DUE_DATE_BONUSES:
            if remaining <= threshold:
                value += bonus
                break

    value += COMPLEXITY_ADJUSTMENTS.get(task.complexity, 0.0)

    return max(0.0, min(1.0, value))


# ============================================================================
# Recommendation strategies
# ============================================================================

class RecommendationStrategy(str, Enum):
    """Kinds of recommendation the API can produce."""

    PRIORITY = "priority"
    QUICK_WINS = "quick_wins"
    OVERDUE = "overdue"


def _reasoning(task, now: datetime) -> str:
    reasons = []

    if task.priority in HIGH_PRIORITIES:
        reasons.append(f"High priority ({task.priority})")

    if task.due_date:
        remaining = days_until(task.due_date, now)
        if remaining <= 1:
            reasons.append("Due very soon")
        elif remaining <= 3:
            reasons.append("Due within 3 days")

    if task.complexity == TaskComplexity.SIMPLE:
        reasons.append("Low complexity - quick win opportunity")

    if not reasons:
        reasons.append("Good candidate based on current workload")

    return ', '.join(reasons)


def _factors(task, now: datetime) -> List[str]:
    factors = []
    if task.priority in HIGH_PRIORITIES:
        factors.append('high_priority')
    if task.due_date and days_until(task.due_date, now) <= 3:
        factors.append('urgent_deadline')
    if task.complexity == TaskComplexity.SIMPLE:
        factors.append('low_complexity')
    if task.estimated_hours and task.estimated_hours <= QUICK_WIN_MAX_HOURS:
        factors.append('quick_task')
    return factors


def _estimated_impact(task) -> str:
    if task.priority == TaskPriority.CRITICAL:
        return 'high'
    if task.priority == TaskPriority.HIGH:
        return 'medium'
    if task.complexity == TaskComplexity.SIMPLE:
        return 'quick_boost'
    return 'standard'


def priority_recommendations(tasks: Sequence, limit: int, now: datetime) -> List[Recommendation]:
    """Highest scored tasks first."""
    ranked = sorted(tasks, key=lambda t: t.ai_priority_score or 0, reverse=True)
    return [
        Recommendation(
            task_id=task.id,
            type='priority',
            task=task.to_dict(),
            confidence_score=task.ai_priority_score or 0.5,
            reasoning=_reasoning(task, now),
            action='Work on this task next',
            factors=_factors(task, now),
            estimated_impact=_estimated_impact(task),
        )
        for task in ranked[:limit]
    ]


def quick_win_recommendations(tasks: Sequence, limit: int, now: datetime) -> List[Recommendation]:
    """Simple or short tasks, shortest estimate first."""
    candidates = [
        task for task in tasks
        if task.complexity == TaskComplexity.SIMPLE
        or (task.estimated_hours is not None and task.estimated_hours <= QUICK_WIN_MAX_HOURS)
    ]
    candidates.sort(key=lambda t: t.estimated_hours or UNKNOWN_ESTIMATE_HOURS)

    recommendations = []
    for task in candidates[:limit]:
        hours = f"{task.estimated_hours:g}" if task.estimated_hours else "low"
        recommendations.append(Recommendation(
            task_id=task.id,
            type='quick_win',
            task=task.to_dict(),
            confidence_score=0.8,
            reasoning=f"Quick win opportunity - estimated {hours} hours",
            action='Complete this for a quick productivity boost',
            factors=['low_complexity', 'short_duration'],
            estimated_impact='momentum_boost',
        ))
    return recommendations


def overdue_recommendations(tasks: Sequence, limit: int, now: datetime) -> List[Recommendation]:
    """Tasks past their due date, oldest deadline first."""
    overdue = sorted(
        (task for task in tasks if task.due_date and task.due_date < now),
        key=lambda t: t.due_date
    )
    return [
        Recommendation(
            task_id=task.id,
            type='overdue',
            task=task.to_dict(),
            confidence_score=0.95,
            reasoning=f"This task is overdue by {days_until(now, task.due_date)} days",
            action='Address this overdue task immediately',
            factors=['overdue', 'deadline_pressure'],
            estimated_impact='risk_mitigation',
        )
        for task in overdue[:limit]
    ]


STRATEGIES: Dict[RecommendationStrategy, Callable[[Sequence, int, datetime], List[Recommendation]]] = {
    RecommendationStrategy.PRIORITY: priority_recommendations,
    RecommendationStrategy.QUICK_WINS: quick_win_recommendations,
    RecommendationStrategy.OVERDUE: overdue_recommendations,
}


def recommend(
    tasks: Sequence,
    kind=RecommendationStrategy.PRIORITY,
    limit: int = 5,
    now: Optional[datetime] = None
) -> List[Recommendation]:
    """
    Produce up to ``limit`` recommendations of the given kind.

    Args:
        tasks: Candidate tasks (normally the user's active tasks)
        kind: RecommendationStrategy or its string value
        limit: Maximum number of recommendations
        now: Reference time (default: current UTC time)

    Raises:
        ValidationError: If ``kind`` is not a known strategy
    """
    try:
        strategy = RecommendationStrategy(kind)
    except ValueError:
        allowed = ', '.join(s.value for s in RecommendationStrategy)
        raise ValidationError(
            f"Invalid recommendation type: '{kind}'. Allowed values: {allowed}",
            field="type"
        )

    return STRATEGIES[strategy](tasks, limit, now or utcnow())[:limit]
