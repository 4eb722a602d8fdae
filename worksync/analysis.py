"""
Keyword-based task analysis and productivity insights.
"""
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from .constants import TaskStatus


COMPLEXITY_KEYWORDS = {
    'simple': ['fix', 'update', 'change', 'add', 'remove'],
    'complex': ['implement', 'design', 'architect', 'integrate', 'refactor', 'migration'],
}

TAG_KEYWORDS = {
    'bug': ['bug', 'fix', 'error', 'issue'],
    'feature': ['feature', 'implement', 'add', 'new'],
    'security': ['security', 'auth', 'authentication', 'encryption'],
    'database': ['database', 'db', 'sql', 'query'],
    'ui': ['ui', 'interface', 'frontend', 'design'],
    'api': ['api', 'endpoint', 'service', 'backend'],
    'testing': ['test', 'testing', 'qa', 'verification'],
    'deployment': ['deploy', 'deployment', 'release', 'production'],
}

EXECUTION_GUIDANCE = {
    'bug': [
        'Reproduce the issue',
        'Identify root cause',
        'Implement fix',
        'Test thoroughly',
        'Deploy to staging',
        'Verify resolution',
    ],
    'feature': [
        'Define requirements clearly',
        'Design the solution',
        'Break into smaller tasks',
        'Implement incrementally',
        'Test each component',
        'Integrate and test end-to-end',
        'Deploy and monitor',
    ],
    'database': [
        'Backup existing data',
        'Design schema changes',
        'Write migration scripts',
        'Test on staging environment',
        'Execute migration',
        'Verify data integrity',
    ],
    'default': [
        'Break task into smaller steps',
        'Research best practices',
        'Plan implementation approach',
        'Execute step by step',
        'Test and validate',
        'Document changes',
    ],
}

# Guidance category -> trigger words, checked in order
GUIDANCE_TRIGGERS = [
    ('bug', ('bug', 'fix')),
    ('feature', ('implement', 'feature')),
    ('database', ('database', 'sql')),
]


def _text(title: str, description: Optional[str]) -> str:
    return f"{title} {description or ''}".lower()


def extract_tags(title: str, description: Optional[str] = None) -> List[str]:
    """Tags whose keywords occur in the task text, or ``['general']``."""
    text = _text(title, description)
    tags = [
        tag for tag, keywords in TAG_KEYWORDS.items()
        if any(keyword in text for keyword in keywords)
    ]
    return tags or ['general']


def execution_guidance(title: str, description: Optional[str] = None) -> List[str]:
    text = _text(title, description)
    for category, triggers in GUIDANCE_TRIGGERS:
        if any(trigger in text for trigger in triggers):
            return list(EXECUTION_GUIDANCE[category])
    return list(EXECUTION_GUIDANCE['default'])


def analyze_task_content(title: str, description: Optional[str] = None) -> Dict[str, Any]:
    """
    Estimate complexity, effort and tags for a task from its text.

    Matching is by substring on the lower-cased title and description;
    "complex" keywords win over "simple" ones.

    Returns:
        Dictionary with complexity_score, estimated_hours, suggested_priority,
        tags and execution_guidance
    """
    text = _text(title, description)
    analysis = {
        'complexity_score': 0.5,
        'estimated_hours': 4,
        'suggested_priority': 'medium',
        'tags': extract_tags(title, description),
        'execution_guidance': execution_guidance(title, description),
    }

    if any(keyword in text for keyword in COMPLEXITY_KEYWORDS['complex']):
        analysis.update(complexity_score=0.8, estimated_hours=8, suggested_priority='high')
    elif any(keyword in text for keyword in COMPLEXITY_KEYWORDS['simple']):
        analysis.update(complexity_score=0.3, estimated_hours=2)

    return analysis


def _most_common(tasks: Sequence, attribute: str) -> Optional[str]:
    counts = Counter(getattr(task, attribute) for task in tasks)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def average_completion_hours(tasks: Sequence) -> float:
    """Mean hours from start to completion over tasks that have both."""
    durations = [
        (task.completed_at - task.started_at).total_seconds() / 3600
        for task in tasks
        if task.started_at and task.completed_at
    ]
    if not durations:
        return 0
    return sum(durations) / len(durations)


def productivity_insights(tasks: Sequence) -> Dict[str, Any]:
    """
    Summarize a user's recent tasks.

    Args:
        tasks: The user's tasks, newest first

    Returns:
        Dictionary with summary, recommendations and patterns
    """
    completed = [task for task in tasks if task.status == TaskStatus.DONE]
    in_progress = [task for task in tasks if task.status == TaskStatus.IN_PROGRESS]

    patterns = {
        'most_common_priority': _most_common(tasks, 'priority'),
        'most_common_complexity': _most_common(tasks, 'complexity'),
        'average_completion_time': average_completion_hours(tasks),
        'productive_insights': [],
    }
    if patterns['most_common_priority'] == 'low':
        patterns['productive_insights'].append('Consider prioritizing more high-impact tasks')
    if patterns['average_completion_time'] > 5:
        patterns['productive_insights'].append('Break down large tasks into smaller, manageable pieces')

    return {
        'summary': {
            'total_tasks': len(tasks),
            'completed_tasks': len(completed),
            'in_progress_tasks': len(in_progress),
            'completion_rate': len(completed) / len(tasks) if tasks else 0,
        },
        'recommendations': [
            {
                'type': 'productivity',
                'message': (
                    f"You have {len(in_progress)} tasks in progress. "
                    "Consider focusing on completing them before starting new ones."
                ),
                'priority': 'high' if len(in_progress) > 3 else 'medium',
            },
            {
                'type': 'planning',
                'message': 'Try to estimate time for your tasks to improve planning accuracy.',
                'priority': 'low',
            },
        ],
        'patterns': patterns,
    }
