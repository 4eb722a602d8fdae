"""
Task service
Handles users and the CRUD lifecycle of locally owned tasks
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select

from ..constants import TASK_SORT_FIELDS, TaskStatus
from ..db import Task, User, init_db
from ..errors import TaskNotFoundError, UserNotFoundError
from ..models import utcnow
from ..scoring import score
from ..validation import ValidationError

logger = logging.getLogger(__name__)

# Changing any of these invalidates the stored AI priority score
SCORED_FIELDS = ('priority', 'due_date', 'complexity')


class TaskStore:
    """
    Persistence for users and their tasks

    Every method opens a short-lived session; returned rows are detached and
    safe to serialize with ``to_dict()``.

    Example:
        store = TaskStore("sqlite://")
        user = store.get_or_create_user("demo@worksync.local", "Demo User")
        task = store.create_task(user.id, {"title": "Write release notes"})
    """

    def __init__(self, database_url: str = "sqlite://"):
        """
        Initialize the store

        Args:
            database_url: SQLAlchemy database URL (default: in-memory SQLite)
        """
        self._session_factory = init_db(database_url)

    @contextmanager
    def _session(self):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_or_create_user(self, email: str, name: str) -> User:
        """Return the user with ``email``, creating it on first use."""
        with self._session() as session:
            user = session.scalars(select(User).where(User.email == email)).first()
            if user is None:
                user = User(email=email, name=name, preferences={})
                session.add(user)
                session.flush()
                logger.info(f"Created user {user.id} <{email}>")
            return user

    def get_user(self, user_id: int) -> User:
        """
        Raises:
            UserNotFoundError: If no such user exists
        """
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            return user

    def update_user(
        self,
        user_id: int,
        name: Optional[str] = None,
        preferences: Optional[Dict[str, Any]] = None
    ) -> User:
        """Update a user's profile; empty values leave the field unchanged."""
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            if name:
                user.name = name
            if preferences:
                user.preferences = preferences
            session.flush()
            return user

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _load_task(self, session, user_id: int, task_id: int) -> Task:
        task = session.scalars(
            select(Task).where(Task.id == task_id, Task.user_id == user_id)
        ).first()
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def list_tasks(
        self,
        user_id: int,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        sort: str = 'createdAt',
        order: str = 'desc'
    ) -> Tuple[List[Task], Dict[str, Any]]:
        """
        List a user's tasks

        Args:
            user_id: Owner
            status: Optional status filter
            priority: Optional priority filter
            limit: Page size
            offset: Rows to skip
            sort: Sort field (API name such as ``createdAt``, or column name)
            order: ``asc`` or ``desc``

        Returns:
            (tasks, pagination) where pagination is
            ``{total, limit, offset, hasMore}``

        Raises:
            ValidationError: If sort or order is not allowed
        """
        column_name = TASK_SORT_FIELDS.get(sort)
        if column_name is None and sort in TASK_SORT_FIELDS.values():
            column_name = sort
        if column_name is None:
            raise ValidationError(
                f"Invalid sort field: '{sort}'. Allowed values: {', '.join(TASK_SORT_FIELDS)}",
                field="sort"
            )

        order = (order or 'desc').lower()
        if order not in ('asc', 'desc'):
            raise ValidationError(f"Invalid sort order: '{order}'", field="order")

        filters = [Task.user_id == user_id]
        if status:
            filters.append(Task.status == status)
        if priority:
            filters.append(Task.priority == priority)

        column = getattr(Task, column_name)
        ordering = column.desc() if order == 'desc' else column.asc()

        with self._session() as session:
            total = session.scalar(select(func.count()).select_from(Task).where(*filters))
            tasks = list(session.scalars(
                select(Task)
                .where(*filters)
                .order_by(ordering, Task.id.desc() if order == 'desc' else Task.id.asc())
                .limit(limit)
                .offset(offset)
            ))

        pagination = {
            'total': total,
            'limit': limit,
            'offset': offset,
            'hasMore': offset + limit < total,
        }
        return tasks, pagination

    def create_task(self, user_id: int, data: Dict[str, Any]) -> Task:
        """
        Create a task owned by ``user_id`` and compute its priority score

        Args:
            user_id: Owner
            data: Validated column values (see validate_task_payload)
        """
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)

            task = Task(user=user, **data)
            task.ai_priority_score = score(task)
            session.add(task)
            session.flush()
            logger.info(f"Created task {task.id} for user {user_id} (score {task.ai_priority_score:.2f})")
            return task

    def get_task(self, user_id: int, task_id: int) -> Task:
        """
        Raises:
            TaskNotFoundError: If the task doesn't exist or belongs to another user
        """
        with self._session() as session:
            return self._load_task(session, user_id, task_id)

    def update_task(self, user_id: int, task_id: int, data: Dict[str, Any]) -> Task:
        """Apply validated changes; rescore when a scored field changes."""
        with self._session() as session:
            task = self._load_task(session, user_id, task_id)
            for key, value in data.items():
                setattr(task, key, value)

            if any(key in data for key in SCORED_FIELDS):
                task.ai_priority_score = score(task)

            session.flush()
            return task

    def delete_task(self, user_id: int, task_id: int) -> None:
        with self._session() as session:
            task = self._load_task(session, user_id, task_id)
            session.delete(task)
            logger.info(f"Deleted task {task_id} for user {user_id}")

    def start_task(self, user_id: int, task_id: int) -> Task:
        """Move a task to in_progress and stamp its start time."""
        with self._session() as session:
            task = self._load_task(session, user_id, task_id)
            task.status = TaskStatus.IN_PROGRESS
            task.started_at = utcnow()
            session.flush()
            return task

    def complete_task(self, user_id: int, task_id: int, actual_hours: Optional[float] = None) -> Task:
        """Mark a task done, optionally recording the hours it took."""
        with self._session() as session:
            task = self._load_task(session, user_id, task_id)
            task.status = TaskStatus.DONE
            task.completed_at = utcnow()
            if actual_hours:
                task.actual_hours = actual_hours
            session.flush()
            return task

    def active_tasks(self, user_id: int) -> List[Task]:
        """Tasks still to do or in progress, highest score first."""
        with self._session() as session:
            return list(session.scalars(
                select(Task)
                .where(Task.user_id == user_id, Task.status.in_(TaskStatus.ACTIVE))
                .order_by(Task.ai_priority_score.desc(), Task.id.asc())
            ))

    def recent_tasks(self, user_id: int, limit: int = 100) -> List[Task]:
        """A user's newest tasks, used for productivity insights."""
        with self._session() as session:
            return list(session.scalars(
                select(Task)
                .where(Task.user_id == user_id)
                .order_by(Task.created_at.desc(), Task.id.desc())
                .limit(limit)
            ))
