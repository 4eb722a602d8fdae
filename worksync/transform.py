"""
Mapping between Azure DevOps work item JSON and WorkSync records.

All upstream field reference names used for normalization live in
WORK_ITEM_FIELD_MAP so a schema change upstream has one point of change.
"""
from typing import Any, Dict, Optional

from .constants import FieldNames, WorkItemDefaults
from .errors import AdoRequestError
from .models import ActivityEntry, Project, WorkItem


# WorkItem attribute -> ADO field reference name
WORK_ITEM_FIELD_MAP: Dict[str, str] = {
    'title': FieldNames.TITLE,
    'description': FieldNames.DESCRIPTION,
    'state': FieldNames.STATE,
    'work_item_type': FieldNames.WORK_ITEM_TYPE,
    'created_date': FieldNames.CREATED_DATE,
    'changed_date': FieldNames.CHANGED_DATE,
    'priority': FieldNames.PRIORITY,
    'severity': FieldNames.SEVERITY,
    'story_points': FieldNames.STORY_POINTS,
    'effort': FieldNames.EFFORT,
    'business_value': FieldNames.BUSINESS_VALUE,
    'due_date': FieldNames.DUE_DATE,
    'tags': FieldNames.TAGS,
}

# Fallbacks for attributes ADO may leave out
WORK_ITEM_DEFAULTS: Dict[str, Any] = {
    'description': WorkItemDefaults.DESCRIPTION,
    'priority': WorkItemDefaults.PRIORITY,
    'tags': WorkItemDefaults.TAGS,
}


def _identity(value: Any):
    """Split an ADO identity field into (display name, email)."""
    if not value:
        return WorkItemDefaults.ASSIGNED_TO, None
    if isinstance(value, dict):
        display_name = value.get('displayName') or value.get('uniqueName')
        return display_name or WorkItemDefaults.ASSIGNED_TO, value.get('uniqueName')
    # Older API versions return "Display Name <email>"
    text = str(value)
    if '<' in text and text.endswith('>'):
        name, _, email = text[:-1].partition('<')
        return name.strip() or WorkItemDefaults.ASSIGNED_TO, email.strip() or None
    return text, None


def _html_url(raw: Dict[str, Any]) -> Optional[str]:
    links = raw.get('_links') or {}
    html = links.get('html') or {}
    return html.get('href') or raw.get('url')


def transform_work_item(raw: Dict[str, Any]) -> WorkItem:
    """
    Transform a raw ADO work item into a normalized WorkItem.

    Args:
        raw: Work item JSON as returned by ``_apis/wit/workitems``

    Returns:
        WorkItem with documented fallbacks applied

    Raises:
        AdoRequestError: If the payload has no id or title
    """
    fields = raw.get('fields') or {}

    work_item_id = raw.get('id') or fields.get(FieldNames.ID)
    if not work_item_id:
        raise AdoRequestError(message="Malformed work item payload: missing id")

    values: Dict[str, Any] = {}
    for attribute, reference_name in WORK_ITEM_FIELD_MAP.items():
        value = fields.get(reference_name)
        if value is None or value == '':
            value = WORK_ITEM_DEFAULTS.get(attribute)
        values[attribute] = value

    if values['title'] is None:
        raise AdoRequestError(message=f"Malformed work item payload: work item {work_item_id} has no title")

    assigned_to, assigned_to_email = _identity(fields.get(FieldNames.ASSIGNED_TO))

    return WorkItem(
        id=int(work_item_id),
        assigned_to=assigned_to,
        assigned_to_email=assigned_to_email,
        url=_html_url(raw),
        **values
    )


def work_item_to_raw(work_item: WorkItem) -> Dict[str, Any]:
    """
    Rebuild the ADO JSON shape for a WorkItem.

    ``transform_work_item(work_item_to_raw(w)) == w`` for any transformed w.
    """
    fields: Dict[str, Any] = {FieldNames.ID: work_item.id}
    for attribute, reference_name in WORK_ITEM_FIELD_MAP.items():
        value = getattr(work_item, attribute)
        if value is not None:
            fields[reference_name] = value

    if work_item.assigned_to_email or work_item.assigned_to != WorkItemDefaults.ASSIGNED_TO:
        fields[FieldNames.ASSIGNED_TO] = {
            'displayName': work_item.assigned_to,
            'uniqueName': work_item.assigned_to_email,
        }

    raw: Dict[str, Any] = {'id': work_item.id, 'fields': fields}
    if work_item.url:
        raw['_links'] = {'html': {'href': work_item.url}}
    return raw


def transform_project(raw: Dict[str, Any]) -> Project:
    """Transform a ``_apis/projects`` entry."""
    return Project(
        id=raw.get('id'),
        name=raw.get('name'),
        description=raw.get('description'),
        url=raw.get('url'),
        state=raw.get('state'),
        visibility=raw.get('visibility'),
    )


def transform_activity(raw: Dict[str, Any]) -> ActivityEntry:
    """Describe a recently changed work item as an activity entry."""
    fields = raw.get('fields') or {}
    work_item_id = int(raw.get('id') or fields.get(FieldNames.ID))
    changed_by, _ = _identity(fields.get(FieldNames.CHANGED_BY))
    title = fields.get(FieldNames.TITLE) or ''
    state = fields.get(FieldNames.STATE)

    description = f"Work item #{work_item_id} '{title}' was updated"
    if state:
        description += f" (state: {state})"
    if fields.get(FieldNames.CHANGED_BY):
        description += f" by {changed_by}"

    return ActivityEntry(
        id=f"activity_{work_item_id}_{raw.get('rev', 0)}",
        type='work-item-update',
        description=description,
        timestamp=fields.get(FieldNames.CHANGED_DATE),
        work_item_id=work_item_id,
    )
