"""
Unit tests for rule-based scoring and recommendations
"""
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from worksync.scoring import (
    RecommendationStrategy,
    days_until,
    recommend,
    score,
)
from worksync.validation import ValidationError


NOW = datetime(2024, 6, 10, 12, 0, 0)


def make_task(task_id=1, priority="medium", complexity="medium", due_date=None,
              estimated_hours=None, ai_priority_score=0.5):
    """Task-like object with the attributes scoring reads"""
    task = SimpleNamespace(
        id=task_id,
        priority=priority,
        complexity=complexity,
        due_date=due_date,
        estimated_hours=estimated_hours,
        ai_priority_score=ai_priority_score,
    )
    task.to_dict = lambda: {'id': task.id, 'priority': task.priority}
    return task


class TestScore:
    """Test score()"""

    def test_baseline(self):
        """Test medium priority, medium complexity, no due date"""
        assert score(make_task(), now=NOW) == pytest.approx(0.65)

    def test_critical_due_tomorrow_is_clamped_to_one(self):
        """Test 0.5 + 0.3 + 0.3 clamps to 1.0"""
        task = make_task(priority="critical", due_date=NOW + timedelta(days=1))
        assert score(task, now=NOW) == 1.0

    @pytest.mark.parametrize("days,bonus", [(1, 0.3), (3, 0.2), (7, 0.1), (8, 0.0)])
    def test_due_date_bonus(self, days, bonus):
        """Test urgency tiers"""
        task = make_task(priority="low", due_date=NOW + timedelta(days=days))
        assert score(task, now=NOW) == pytest.approx(0.5 + 0.06 + bonus)

    def test_complexity_adjustment(self):
        """Test simple raises and complex lowers the score"""
        simple = score(make_task(priority="low", complexity="simple"), now=NOW)
        complex_ = score(make_task(priority="low", complexity="complex"), now=NOW)
        assert simple == pytest.approx(0.66)
        assert complex_ == pytest.approx(0.46)

    def test_unknown_priority_uses_default_weight(self):
        """Test fallback weight"""
        assert score(make_task(priority="urgent"), now=NOW) == pytest.approx(0.65)

    @pytest.mark.parametrize("complexity", ["simple", "medium", "complex"])
    @pytest.mark.parametrize("due_in", [None, -3, 0.5, 2, 5, 30])
    def test_monotonic_in_priority(self, complexity, due_in):
        """Test that raising the priority tier never lowers the score"""
        due_date = NOW + timedelta(days=due_in) if due_in is not None else None
        scores = [
            score(make_task(priority=p, complexity=complexity, due_date=due_date), now=NOW)
            for p in ("low", "medium", "high", "critical")
        ]
        assert scores == sorted(scores)
        assert all(0.0 <= s <= 1.0 for s in scores)

    def test_days_until_rounds_up(self):
        """Test partial days count as a whole day"""
        assert days_until(NOW + timedelta(hours=2), NOW) == 1
        assert days_until(NOW - timedelta(days=2), NOW) == -2


class TestRecommend:
    """Test recommend()"""

    def test_overdue_returns_only_past_due_sorted(self):
        """Test exactly the overdue tasks come back, oldest first"""
        tasks = [
            make_task(1, due_date=NOW - timedelta(days=1)),
            make_task(2, due_date=NOW + timedelta(days=2)),
            make_task(3, due_date=NOW - timedelta(days=5)),
            make_task(4),
        ]

        recommendations = recommend(tasks, "overdue", 5, now=NOW)

        assert [r.task_id for r in recommendations] == [3, 1]
        assert recommendations[0].reasoning == "This task is overdue by 5 days"
        assert recommendations[0].confidence_score == 0.95
        assert recommendations[0].factors == ['overdue', 'deadline_pressure']

    def test_priority_orders_by_score(self):
        """Test the priority strategy ranks by stored score"""
        tasks = [
            make_task(1, ai_priority_score=0.4),
            make_task(2, priority="critical", ai_priority_score=0.95, due_date=NOW + timedelta(hours=3)),
            make_task(3, ai_priority_score=0.7),
        ]

        recommendations = recommend(tasks, RecommendationStrategy.PRIORITY, 2, now=NOW)

        assert [r.task_id for r in recommendations] == [2, 3]
        top = recommendations[0]
        assert top.confidence_score == 0.95
        assert top.reasoning == "High priority (critical), Due very soon"
        assert top.factors == ['high_priority', 'urgent_deadline']
        assert top.estimated_impact == 'high'
        assert recommendations[1].reasoning == "Good candidate based on current workload"

    def test_quick_wins(self):
        """Test simple or short tasks, shortest first"""
        tasks = [
            make_task(1, complexity="complex", estimated_hours=10),
            make_task(2, complexity="simple"),
            make_task(3, estimated_hours=1.5),
            make_task(4, complexity="medium", estimated_hours=2),
        ]

        recommendations = recommend(tasks, "quick_wins", 5, now=NOW)

        assert [r.task_id for r in recommendations] == [3, 4, 2]
        assert recommendations[0].reasoning == "Quick win opportunity - estimated 1.5 hours"
        assert recommendations[2].reasoning == "Quick win opportunity - estimated low hours"
        assert all(r.type == 'quick_win' for r in recommendations)

    def test_limit(self):
        """Test at most limit records come back"""
        tasks = [make_task(i) for i in range(1, 10)]
        assert len(recommend(tasks, "priority", 3, now=NOW)) == 3

    def test_empty(self):
        """Test no tasks, no recommendations"""
        assert recommend([], "overdue", 5, now=NOW) == []

    def test_unknown_kind(self):
        """Test that unknown strategies are rejected"""
        with pytest.raises(ValidationError) as exc_info:
            recommend([], "random", 5)
        assert exc_info.value.field == "type"

    def test_to_dict(self):
        """Test the API shape"""
        rec = recommend([make_task(7)], "priority", 1, now=NOW)[0].to_dict()
        assert rec['id'] == 'rec_7'
        assert rec['taskId'] == 7
        assert rec['confidenceScore'] == 0.5
        assert 'factors' in rec['metadata']
