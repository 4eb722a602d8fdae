"""
Data models for the WorkSync backend
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the form stored in the database)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """Render a naive UTC datetime as ISO-8601 with a Z suffix."""
    if value is None:
        return None
    return value.isoformat() + 'Z'


@dataclass
class WorkItem:
    """Represents a normalized Azure DevOps work item"""
    id: int
    title: str
    description: str = ""
    state: Optional[str] = None
    work_item_type: Optional[str] = None
    assigned_to: str = "Unassigned"
    assigned_to_email: Optional[str] = None
    created_date: Optional[str] = None
    changed_date: Optional[str] = None
    priority: int = 2
    severity: Optional[str] = None
    story_points: Optional[float] = None
    effort: Optional[float] = None
    business_value: Optional[float] = None
    due_date: Optional[str] = None
    tags: str = ""
    url: Optional[str] = None

    @property
    def tag_list(self) -> List[str]:
        """Tags split on ADO's semicolon separator."""
        return [tag.strip() for tag in self.tags.split(';') if tag.strip()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'state': self.state,
            'workItemType': self.work_item_type,
            'assignedTo': self.assigned_to,
            'assignedToEmail': self.assigned_to_email,
            'createdDate': self.created_date,
            'changedDate': self.changed_date,
            'priority': self.priority,
            'severity': self.severity,
            'storyPoints': self.story_points,
            'effort': self.effort,
            'businessValue': self.business_value,
            'dueDate': self.due_date,
            'tags': self.tags,
            'url': self.url,
        }

    def to_raw(self) -> Dict[str, Any]:
        """Rebuild the ADO JSON shape this record was transformed from."""
        from .transform import work_item_to_raw
        return work_item_to_raw(self)


@dataclass
class Project:
    """Represents an Azure DevOps project"""
    id: str
    name: str
    description: Optional[str] = None
    url: Optional[str] = None
    state: Optional[str] = None
    visibility: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'url': self.url,
            'state': self.state,
            'visibility': self.visibility,
        }


@dataclass
class ActivityEntry:
    """A recent change to a work item"""
    id: str
    type: str
    description: str
    timestamp: Optional[str]
    work_item_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'description': self.description,
            'timestamp': self.timestamp,
            'workItemId': self.work_item_id,
        }


@dataclass
class Recommendation:
    """A derived suggestion about which task to work on; never persisted"""
    task_id: int
    type: str
    task: Dict[str, Any]
    confidence_score: float
    reasoning: str
    action: str
    factors: List[str] = field(default_factory=list)
    estimated_impact: str = "standard"

    @property
    def id(self) -> str:
        return f"rec_{self.task_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'taskId': self.task_id,
            'task': self.task,
            'confidenceScore': self.confidence_score,
            'reasoning': self.reasoning,
            'action': self.action,
            'metadata': {
                'factors': self.factors,
                'estimatedImpact': self.estimated_impact,
            },
        }
