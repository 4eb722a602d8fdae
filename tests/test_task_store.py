"""
Unit tests for TaskStore on an in-memory database
"""
from datetime import timedelta

import pytest

from worksync.errors import TaskNotFoundError, UserNotFoundError
from worksync.models import utcnow
from worksync.services.task_service import TaskStore
from worksync.validation import ValidationError


@pytest.fixture
def store():
    return TaskStore("sqlite://")


@pytest.fixture
def user(store):
    return store.get_or_create_user("ada@example.com", "Ada")


@pytest.fixture
def other_user(store):
    return store.get_or_create_user("grace@example.com", "Grace")


class TestUsers:
    """Test user operations"""

    def test_get_or_create_is_idempotent(self, store, user):
        """Test the same email returns the same user"""
        again = store.get_or_create_user("ada@example.com", "Someone Else")
        assert again.id == user.id
        assert again.name == "Ada"

    def test_get_user_missing(self, store):
        """Test unknown users raise USER_NOT_FOUND"""
        with pytest.raises(UserNotFoundError):
            store.get_user(999)

    def test_update_user(self, store, user):
        """Test profile updates"""
        updated = store.update_user(user.id, name="Ada L.", preferences={'theme': 'dark'})
        assert updated.name == "Ada L."
        assert store.get_user(user.id).preferences == {'theme': 'dark'}

    def test_update_user_empty_values_keep_fields(self, store, user):
        """Test empty values leave fields unchanged"""
        updated = store.update_user(user.id, name="", preferences={})
        assert updated.name == "Ada"


class TestTaskCrud:
    """Test task create/read/update/delete"""

    def test_create_sets_defaults_and_score(self, store, user):
        """Test defaults and the computed priority score"""
        task = store.create_task(user.id, {'title': 'Write docs'})

        assert task.id is not None
        assert task.status == 'todo'
        assert task.priority == 'medium'
        assert task.complexity == 'medium'
        assert task.ai_priority_score == pytest.approx(0.65)

        data = task.to_dict()
        assert data['userId'] == user.id
        assert data['user'] == {'id': user.id, 'name': 'Ada', 'email': 'ada@example.com'}
        assert data['createdAt'].endswith('Z')

    def test_create_critical_due_tomorrow(self, store, user):
        """Test the score is clamped to 1.0"""
        task = store.create_task(user.id, {
            'title': 'Hotfix',
            'priority': 'critical',
            'due_date': utcnow() + timedelta(hours=20),
        })
        assert task.ai_priority_score == 1.0

    def test_create_for_unknown_user(self, store):
        """Test tasks need an existing owner"""
        with pytest.raises(UserNotFoundError):
            store.create_task(999, {'title': 'Orphan'})

    def test_get_task(self, store, user):
        """Test fetching by id"""
        created = store.create_task(user.id, {'title': 'Read'})
        assert store.get_task(user.id, created.id).title == 'Read'

    def test_other_users_task_not_found(self, store, user, other_user):
        """Test tasks of other users are indistinguishable from missing ones"""
        task = store.create_task(other_user.id, {'title': 'Private'})

        with pytest.raises(TaskNotFoundError):
            store.get_task(user.id, task.id)
        with pytest.raises(TaskNotFoundError):
            store.update_task(user.id, task.id, {'title': 'Mine now'})
        with pytest.raises(TaskNotFoundError):
            store.delete_task(user.id, task.id)

        assert store.get_task(other_user.id, task.id).title == 'Private'

    def test_update_rescores_on_priority_change(self, store, user):
        """Test scored fields trigger a rescore"""
        task = store.create_task(user.id, {'title': 'Review'})
        updated = store.update_task(user.id, task.id, {'priority': 'critical'})
        assert updated.ai_priority_score == pytest.approx(0.8)

    def test_update_without_scored_fields_keeps_score(self, store, user):
        """Test other fields leave the score alone"""
        task = store.create_task(user.id, {'title': 'Review'})
        updated = store.update_task(user.id, task.id, {'title': 'Review PR', 'description': 'Carefully'})
        assert updated.title == 'Review PR'
        assert updated.ai_priority_score == task.ai_priority_score

    def test_delete(self, store, user):
        """Test deleted tasks are gone"""
        task = store.create_task(user.id, {'title': 'Temp'})
        store.delete_task(user.id, task.id)
        with pytest.raises(TaskNotFoundError):
            store.get_task(user.id, task.id)


class TestTaskLifecycle:
    """Test start and complete transitions"""

    def test_start(self, store, user):
        """Test start sets status and timestamp"""
        task = store.create_task(user.id, {'title': 'Build'})
        started = store.start_task(user.id, task.id)
        assert started.status == 'in_progress'
        assert started.started_at is not None

    def test_complete_with_hours(self, store, user):
        """Test completion records actual hours"""
        task = store.create_task(user.id, {'title': 'Build'})
        done = store.complete_task(user.id, task.id, actual_hours=3.5)
        assert done.status == 'done'
        assert done.completed_at is not None
        assert done.actual_hours == 3.5

    def test_complete_without_hours(self, store, user):
        """Test actual hours stay unset when not given"""
        task = store.create_task(user.id, {'title': 'Build'})
        assert store.complete_task(user.id, task.id).actual_hours is None


class TestListTasks:
    """Test listing, filtering, sorting and pagination"""

    def test_filters_and_pagination(self, store, user, other_user):
        """Test status filter and hasMore"""
        for i in range(5):
            store.create_task(user.id, {'title': f'Task {i}', 'status': 'done' if i % 2 else 'todo'})
        store.create_task(other_user.id, {'title': 'Not mine'})

        tasks, pagination = store.list_tasks(user.id, status='todo', limit=2)

        assert [t.title for t in tasks] == ['Task 4', 'Task 2']
        assert pagination == {'total': 3, 'limit': 2, 'offset': 0, 'hasMore': True}

        tasks, pagination = store.list_tasks(user.id, status='todo', limit=2, offset=2)
        assert [t.title for t in tasks] == ['Task 0']
        assert pagination['hasMore'] is False

    def test_priority_filter(self, store, user):
        """Test priority filter"""
        store.create_task(user.id, {'title': 'A', 'priority': 'high'})
        store.create_task(user.id, {'title': 'B', 'priority': 'low'})
        tasks, _ = store.list_tasks(user.id, priority='high')
        assert [t.title for t in tasks] == ['A']

    def test_sort(self, store, user):
        """Test API and column sort names"""
        store.create_task(user.id, {'title': 'b'})
        store.create_task(user.id, {'title': 'a'})
        store.create_task(user.id, {'title': 'c'})

        tasks, _ = store.list_tasks(user.id, sort='title', order='asc')
        assert [t.title for t in tasks] == ['a', 'b', 'c']

        tasks, _ = store.list_tasks(user.id, sort='ai_priority_score', order='DESC')
        assert len(tasks) == 3

    def test_invalid_sort(self, store, user):
        """Test unknown sort fields and orders are rejected"""
        with pytest.raises(ValidationError):
            store.list_tasks(user.id, sort='password')
        with pytest.raises(ValidationError):
            store.list_tasks(user.id, order='sideways')

    def test_active_tasks_by_score(self, store, user):
        """Test active tasks exclude done ones and rank by score"""
        low = store.create_task(user.id, {'title': 'Low', 'priority': 'low'})
        high = store.create_task(user.id, {'title': 'High', 'priority': 'high'})
        store.create_task(user.id, {'title': 'Done', 'status': 'done', 'priority': 'critical'})

        assert [t.id for t in store.active_tasks(user.id)] == [high.id, low.id]

    def test_recent_tasks_limit(self, store, user):
        """Test recent tasks are newest first"""
        for i in range(3):
            store.create_task(user.id, {'title': f'T{i}'})
        assert [t.title for t in store.recent_tasks(user.id, limit=2)] == ['T2', 'T1']
