"""
Constants and field definitions for Azure DevOps operations and local tasks.
"""

from typing import List


SERVICE_VERSION = "1.0.0"

# Azure DevOps resource ID used when requesting OAuth tokens from Entra ID
AZURE_DEVOPS_RESOURCE_ID = "499b84ac-1321-427f-aa17-267ca6975798"


# ============================================================================
# Field Reference Names
# ============================================================================

class FieldNames:
    """Azure DevOps field reference names."""

    # System fields
    ID = "System.Id"
    TEAM_PROJECT = "System.TeamProject"
    WORK_ITEM_TYPE = "System.WorkItemType"
    STATE = "System.State"
    ASSIGNED_TO = "System.AssignedTo"
    CREATED_DATE = "System.CreatedDate"
    CHANGED_DATE = "System.ChangedDate"
    CHANGED_BY = "System.ChangedBy"
    TITLE = "System.Title"
    DESCRIPTION = "System.Description"
    TAGS = "System.Tags"
    ITERATION_PATH = "System.IterationPath"
    AREA_PATH = "System.AreaPath"

    # Microsoft.VSTS.Common fields
    PRIORITY = "Microsoft.VSTS.Common.Priority"
    SEVERITY = "Microsoft.VSTS.Common.Severity"
    BUSINESS_VALUE = "Microsoft.VSTS.Common.BusinessValue"
    STACK_RANK = "Microsoft.VSTS.Common.StackRank"
    BACKLOG_PRIORITY = "Microsoft.VSTS.Common.BacklogPriority"

    # Microsoft.VSTS.Scheduling fields
    STORY_POINTS = "Microsoft.VSTS.Scheduling.StoryPoints"
    EFFORT = "Microsoft.VSTS.Scheduling.Effort"
    REMAINING_WORK = "Microsoft.VSTS.Scheduling.RemainingWork"
    DUE_DATE = "Microsoft.VSTS.Scheduling.DueDate"
    TARGET_DATE = "Microsoft.VSTS.Scheduling.TargetDate"


# Fields a WIQL ORDER BY clause may reference
ORDERABLE_FIELDS = {
    FieldNames.ID,
    FieldNames.TITLE,
    FieldNames.STATE,
    FieldNames.WORK_ITEM_TYPE,
    FieldNames.ASSIGNED_TO,
    FieldNames.CREATED_DATE,
    FieldNames.CHANGED_DATE,
    FieldNames.ITERATION_PATH,
    FieldNames.AREA_PATH,
    FieldNames.PRIORITY,
    FieldNames.SEVERITY,
    FieldNames.BUSINESS_VALUE,
    FieldNames.STACK_RANK,
    FieldNames.BACKLOG_PRIORITY,
    FieldNames.STORY_POINTS,
    FieldNames.EFFORT,
    FieldNames.REMAINING_WORK,
    FieldNames.DUE_DATE,
    FieldNames.TARGET_DATE,
}


# ============================================================================
# Field Sets for Different Query Types
# ============================================================================

# Columns selected by backlog queries
BACKLOG_FIELDS: List[str] = [
    FieldNames.ID,
    FieldNames.TITLE,
    FieldNames.STATE,
    FieldNames.ASSIGNED_TO,
    FieldNames.WORK_ITEM_TYPE,
    FieldNames.PRIORITY,
    FieldNames.STORY_POINTS,
]

# Columns selected by recent activity queries
ACTIVITY_FIELDS: List[str] = [
    FieldNames.ID,
    FieldNames.TITLE,
    FieldNames.STATE,
    FieldNames.CHANGED_DATE,
    FieldNames.CHANGED_BY,
]

# Backlog ordering: most important first, bigger stories before smaller ones
DEFAULT_BACKLOG_ORDER = [
    (FieldNames.PRIORITY, "ASC"),
    (FieldNames.STORY_POINTS, "DESC"),
    (FieldNames.CHANGED_DATE, "DESC"),
]


# ============================================================================
# Query Limits
# ============================================================================

class QueryLimits:
    """Limits for ADO queries."""

    # Backlog items returned when the caller doesn't pass ``top``
    DEFAULT_BACKLOG_TOP = 15

    # Bounds accepted by the backlog endpoint
    MIN_BACKLOG_TOP = 1
    MAX_BACKLOG_TOP = 50

    # Recent activity defaults
    DEFAULT_ACTIVITY_DAYS = 7
    DEFAULT_ACTIVITY_TOP = 10

    # Maximum ids accepted by GET _apis/wit/workitems
    BATCH_SIZE = 200


class ExpandOptions:
    """Work item expand options for Azure DevOps API."""

    NONE = "None"
    RELATIONS = "Relations"
    ALL = "All"


# ============================================================================
# Work item defaults
# ============================================================================

class WorkItemDefaults:
    """Fallbacks applied when ADO omits optional fields."""

    PRIORITY = 2  # Medium
    ASSIGNED_TO = "Unassigned"
    TAGS = ""
    DESCRIPTION = ""


# ============================================================================
# Local task vocabulary
# ============================================================================

class TaskStatus:
    """Local task workflow states."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    BLOCKED = "blocked"

    ALL = (TODO, IN_PROGRESS, DONE, BLOCKED)
    ACTIVE = (TODO, IN_PROGRESS)


class TaskPriority:
    """Local task priority tiers, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    ALL = (LOW, MEDIUM, HIGH, CRITICAL)


class TaskComplexity:
    """Local task complexity levels."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"

    ALL = (SIMPLE, MEDIUM, COMPLEX)


# Columns the task listing may be sorted by (API name -> column attribute)
TASK_SORT_FIELDS = {
    'createdAt': 'created_at',
    'updatedAt': 'updated_at',
    'dueDate': 'due_date',
    'priority': 'priority',
    'status': 'status',
    'title': 'title',
    'aiPriorityScore': 'ai_priority_score',
}


def format_wiql_fields(fields: List[str]) -> str:
    """
    Format field list for WIQL SELECT clause.

    Args:
        fields: List of field names

    Returns:
        Formatted field list for WIQL (e.g., "[System.Id], [System.Title]")
    """
    return ', '.join(f'[{field}]' for field in fields)
