"""Catalogue of ready-made workflow definitions.

Templates are plain ``WorkflowDefinition`` presets built from the stock
``notify``, ``flag`` and ``update_record`` actions. They are read-only and
live in memory; ``WorkflowManager.create_from_template`` turns one into a
stored workflow.
"""

from collections import Counter
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..models.core import WorkflowDefinition

Difficulty = Literal["beginner", "intermediate", "advanced"]
DIFFICULTIES = ("beginner", "intermediate", "advanced")


class WorkflowTemplate(BaseModel):
    """A catalogued preset plus the notes shown when browsing it."""
    id: str = Field(..., description="Stable template identifier")
    name: str
    description: str
    category: str
    tags: List[str] = Field(default_factory=list)
    difficulty: Difficulty = "beginner"
    use_cases: List[str] = Field(default_factory=list, description="Situations the template is meant for")
    customization_points: List[str] = Field(default_factory=list, description="What users usually change")
    prerequisites: List[str] = Field(default_factory=list, description="What must exist before it works")
    definition: WorkflowDefinition


def _event(event: str, entity_type: Optional[str] = None) -> Dict[str, Any]:
    return {"type": "EVENT", "event": event, "entity_type": entity_type}


def _schedule(schedule: str) -> Dict[str, Any]:
    return {"type": "SCHEDULE", "schedule": schedule}


def _leaf(field: str, operator: str, value: Any = None) -> Dict[str, Any]:
    return {"field": field, "operator": operator, "value": value}


def _notify(order: int, channel: str, recipients: str, message: str, subject: str = "") -> Dict[str, Any]:
    return {
        "type": "notify",
        "order": order,
        "config": {"channel": channel, "recipients": recipients, "subject": subject, "message": message},
    }


def _flag(order: int, label: str, reason: str) -> Dict[str, Any]:
    return {"type": "flag", "order": order, "config": {"label": label, "reason": reason}}


def _template(template_id: str, name: str, description: str, category: str, tags: List[str],
              triggers: List[Dict[str, Any]], actions: List[Dict[str, Any]],
              conditions: Optional[Dict[str, Any]] = None, priority: int = 5,
              **notes) -> WorkflowTemplate:
    definition = WorkflowDefinition.model_validate({
        "name": name,
        "description": description,
        "triggers": triggers,
        "conditions": conditions,
        "actions": actions,
        "priority": priority,
        "category": category,
        "tags": tags,
    })
    return WorkflowTemplate(
        id=template_id, name=name, description=description, category=category,
        tags=tags, definition=definition, **notes,
    )


WORKFLOW_TEMPLATES: List[WorkflowTemplate] = [
    # Project management
    _template(
        "project-created-notification",
        "New Project Notification",
        "Email the team and post to Slack when a new project is created",
        "project_management",
        ["notification", "project", "email", "slack"],
        triggers=[_event("project.created", "project")],
        actions=[
            _notify(1, "email", "team@company.com",
                    "Project {{entity.name}} for {{entity.client_name}} was created "
                    "with status {{entity.status}} and priority {{entity.priority}}.",
                    subject="New Project Created: {{entity.name}}"),
            _notify(2, "slack", "#projects", "New project created: {{entity.name}} for {{entity.client_name}}"),
        ],
        use_cases=["Notify the team when new projects are created", "Announce new work in Slack"],
        customization_points=["Email recipient address", "Slack channel name", "Message content"],
    ),
    _template(
        "project-status-change-alert",
        "Project Status Change Alert",
        "Alert the project manager when a project moves to a tracked status",
        "project_management",
        ["notification", "project", "status", "alert"],
        triggers=[_event("project.status_changed", "project")],
        conditions={"op": "OR", "children": [
            _leaf("entity.status", "equals", "IN_PROGRESS"),
            _leaf("entity.status", "equals", "COMPLETED"),
            _leaf("entity.status", "equals", "ON_HOLD"),
        ]},
        actions=[
            _notify(1, "email", "{{entity.project_manager_email}}",
                    "Project {{entity.name}} is now {{entity.status}}.",
                    subject="Project Status Changed: {{entity.name}}"),
            _notify(2, "in_app", "{{entity.project_manager_id}}", "{{entity.name}} is now {{entity.status}}"),
        ],
        priority=7,
        difficulty="intermediate",
        use_cases=["Notify when a project starts", "Alert when a project is completed",
                   "Escalate when a project is put on hold"],
        customization_points=["Tracked statuses", "Recipients"],
    ),
    _template(
        "project-overdue-reminder",
        "Overdue Project Reminder",
        "Daily reminder and review flag for projects past their deadline",
        "project_management",
        ["reminder", "project", "deadline", "overdue"],
        triggers=[_schedule("daily")],
        conditions={"op": "AND", "children": [
            _leaf("entity.days_overdue", "greaterThan", 0),
            _leaf("entity.status", "notIn", ["COMPLETED", "CANCELLED"]),
        ]},
        actions=[
            _notify(1, "email", "{{entity.project_manager_email}}",
                    "Project {{entity.name}} is {{entity.days_overdue}} day(s) past its deadline.",
                    subject="Overdue Project: {{entity.name}}"),
            _notify(2, "slack", "#project-alerts", "{{entity.name}} is {{entity.days_overdue}} day(s) overdue"),
            _flag(3, "overdue", "{{entity.days_overdue}} day(s) past deadline"),
        ],
        priority=8,
        use_cases=["Keep deadlines visible", "Surface slipping projects in review queues"],
        customization_points=["Schedule name", "Excluded statuses", "Slack channel"],
        prerequisites=["An external scheduler dispatching the 'daily' schedule with each project as entity"],
    ),
    # Task management
    _template(
        "task-assignment-notification",
        "Task Assignment Notification",
        "Notify a user when a task is assigned to them",
        "task_management",
        ["notification", "task", "assignment"],
        triggers=[_event("task.assigned", "task")],
        actions=[
            _notify(1, "in_app", "{{entity.assignee_id}}", "You were assigned: {{entity.title}}"),
            _notify(2, "email", "{{entity.assignee_email}}",
                    "Task {{entity.title}} in {{entity.project_name}} is due {{entity.due_date}}.",
                    subject="New Task Assigned: {{entity.title}}"),
        ],
        priority=6,
        use_cases=["Tell people about new work as soon as it is assigned"],
        customization_points=["Channels used", "Message content"],
    ),
    _template(
        "task-completion-workflow",
        "Task Completion Workflow",
        "Notify the project manager and record progress on the project when a task is completed",
        "task_management",
        ["notification", "task", "completion"],
        triggers=[_event("task.completed", "task")],
        actions=[
            _notify(1, "email", "{{entity.project_manager_email}}",
                    "{{entity.assignee_name}} completed {{entity.title}}.",
                    subject="Task Completed: {{entity.title}}"),
            _notify(2, "in_app", "{{entity.project_manager_id}}", "{{entity.title}} was completed"),
            {"type": "update_record", "order": 3, "config": {
                "entity_type": "project",
                "entity_id": "{{entity.project_id}}",
                "changes": {"last_completed_task": "{{entity.id}}"},
            }},
        ],
        difficulty="intermediate",
        use_cases=["Track task completion", "Keep project progress current"],
        customization_points=["Fields written on the project", "Recipients"],
    ),
    _template(
        "task-overdue-escalation",
        "Overdue Task Escalation",
        "Escalate overdue high-priority tasks to management",
        "task_management",
        ["escalation", "task", "overdue", "priority"],
        triggers=[_schedule("daily")],
        conditions={"op": "AND", "children": [
            _leaf("entity.priority", "in", ["HIGH", "URGENT"]),
            _leaf("entity.days_overdue", "greaterOrEqual", 2),
        ]},
        actions=[
            _notify(1, "email", "management@company.com",
                    "{{entity.priority}} task {{entity.title}} assigned to {{entity.assignee_name}} "
                    "is {{entity.days_overdue}} day(s) overdue.",
                    subject="Escalation: {{entity.title}}"),
            _notify(2, "sms", "{{entity.manager_phone}}", "Overdue {{entity.priority}} task: {{entity.title}}"),
            _flag(3, "escalated", "{{entity.days_overdue}} day(s) overdue"),
        ],
        priority=9,
        difficulty="intermediate",
        use_cases=["Make sure urgent work does not slip unnoticed"],
        customization_points=["Priority levels", "Overdue threshold", "Escalation contacts"],
        prerequisites=["An SMS-capable notification sender"],
    ),
    # Invoices and payments
    _template(
        "invoice-created-notification",
        "New Invoice Notification",
        "Send the invoice to the client as soon as it is created",
        "invoice_payment",
        ["invoice", "notification", "client", "billing"],
        triggers=[_event("invoice.created", "invoice")],
        actions=[
            _notify(1, "email", "{{entity.client_email}}",
                    "Invoice {{entity.invoice_number}} for {{entity.amount}} is due {{entity.due_date}}.",
                    subject="Invoice {{entity.invoice_number}}"),
            _notify(2, "in_app", "accounting", "Invoice {{entity.invoice_number}} sent to {{entity.client_name}}"),
        ],
        priority=7,
        use_cases=["Deliver invoices without manual steps"],
        customization_points=["Email wording", "Internal recipients"],
    ),
    _template(
        "invoice-payment-received",
        "Payment Received Confirmation",
        "Thank the client and notify accounting when an invoice is paid",
        "invoice_payment",
        ["invoice", "payment", "confirmation", "accounting"],
        triggers=[_event("invoice.paid", "invoice")],
        actions=[
            _notify(1, "email", "{{entity.client_email}}",
                    "Thank you! We received {{entity.amount}} for invoice {{entity.invoice_number}}.",
                    subject="Payment Received: {{entity.invoice_number}}"),
            _notify(2, "email", "accounting@company.com",
                    "Invoice {{entity.invoice_number}} from {{entity.client_name}} was paid on {{entity.paid_at}}.",
                    subject="Payment Received: {{entity.invoice_number}}"),
            _notify(3, "slack", "#finance", "Payment received: {{entity.invoice_number}} ({{entity.amount}})"),
        ],
        priority=6,
        use_cases=["Confirm payments to clients", "Keep accounting informed"],
        customization_points=["Thank-you wording", "Accounting address"],
    ),
    _template(
        "invoice-overdue-reminder",
        "Overdue Invoice Reminder",
        "Remind the client about an overdue invoice and flag it for collection",
        "invoice_payment",
        ["invoice", "overdue", "reminder", "collection"],
        triggers=[_schedule("daily")],
        conditions={"op": "AND", "children": [
            _leaf("entity.status", "notEquals", "PAID"),
            _leaf("entity.days_overdue", "greaterThan", 0),
        ]},
        actions=[
            _notify(1, "email", "{{entity.client_email}}",
                    "Invoice {{entity.invoice_number}} for {{entity.amount}} is {{entity.days_overdue}} day(s) overdue.",
                    subject="Payment Reminder: {{entity.invoice_number}}"),
            _notify(2, "in_app", "{{entity.account_manager_id}}",
                    "{{entity.client_name}} has not paid {{entity.invoice_number}}"),
            _flag(3, "payment_overdue", "{{entity.days_overdue}} day(s) overdue"),
        ],
        priority=8,
        difficulty="intermediate",
        use_cases=["Chase late payments", "Build a collection queue"],
        customization_points=["Reminder wording", "Overdue threshold"],
        prerequisites=["An external scheduler dispatching the 'daily' schedule with each invoice as entity"],
    ),
    # Client communication
    _template(
        "client-welcome-workflow",
        "New Client Welcome",
        "Welcome new clients and hand them to their account manager",
        "client_communication",
        ["client", "welcome", "onboarding", "email"],
        triggers=[_event("client.registered", "client")],
        actions=[
            _notify(1, "email", "{{entity.email}}",
                    "Welcome aboard, {{entity.name}}! Your account manager will be in touch shortly.",
                    subject="Welcome, {{entity.name}}"),
            _notify(2, "email", "{{entity.email}}",
                    "Here is everything you need to get started with your first project.",
                    subject="Getting started"),
            _notify(3, "in_app", "{{entity.account_manager_id}}", "New client {{entity.name}} registered"),
            {"type": "update_record", "order": 4, "config": {"changes": {"onboarding_status": "welcomed"}}},
        ],
        difficulty="intermediate",
        use_cases=["Onboard new clients consistently"],
        customization_points=["Welcome wording", "Onboarding material"],
    ),
    _template(
        "client-milestone-celebration",
        "Client Milestone Celebration",
        "Thank the client when one of their projects is completed",
        "client_communication",
        ["client", "celebration", "milestone", "engagement"],
        triggers=[_event("project.completed", "project")],
        actions=[
            _notify(1, "email", "{{entity.client_email}}",
                    "We are proud to have completed {{entity.name}} with you. Thank you for your trust!",
                    subject="Project Completed: {{entity.name}}"),
            _notify(2, "slack", "#client-success", "{{entity.name}} for {{entity.client_name}} is complete"),
        ],
        priority=4,
        use_cases=["Strengthen client relationships"],
        customization_points=["Message tone", "Internal channel"],
    ),
    # Team collaboration
    _template(
        "daily-standup-reminder",
        "Daily Standup Reminder",
        "Remind the team about the daily standup",
        "team_collaboration",
        ["team", "standup", "reminder", "meeting"],
        triggers=[_schedule("weekday-morning")],
        actions=[
            _notify(1, "slack", "#team", "Standup in 15 minutes: yesterday, today, blockers."),
            _notify(2, "teams", "engineering", "Standup in 15 minutes"),
        ],
        priority=3,
        use_cases=["Keep standups on time"],
        customization_points=["Schedule name", "Channels", "Agenda"],
        prerequisites=["An external scheduler dispatching the 'weekday-morning' schedule"],
    ),
    _template(
        "team-achievement-celebration",
        "Team Achievement Broadcast",
        "Announce the completion of large projects to the whole company",
        "team_collaboration",
        ["team", "celebration", "achievement", "morale"],
        triggers=[_event("project.completed", "project")],
        conditions=_leaf("entity.budget", "greaterThan", 50000),
        actions=[
            _notify(1, "slack", "#company-wins",
                    "Team {{entity.team_name}} just completed {{entity.name}} for {{entity.client_name}}!"),
            _notify(2, "email", "all@company.com",
                    "Congratulations to {{entity.team_members}} on completing {{entity.name}}.",
                    subject="Team Win: {{entity.name}}"),
        ],
        use_cases=["Share wins company-wide", "Recognize team effort"],
        customization_points=["Minimum project value", "Audience"],
    ),
    _template(
        "code-review-assignment",
        "Code Review Assignment Notification",
        "Notify a developer when they are asked to review code",
        "team_collaboration",
        ["code", "review", "developer", "notification"],
        triggers=[_event("code_review.assigned")],
        actions=[
            _notify(1, "in_app", "{{entity.reviewer_id}}",
                    "{{entity.author_name}} requested review: {{entity.title}}"),
            _notify(2, "slack", "@{{entity.reviewer_slack_id}}",
                    "Code review requested by {{entity.author_name}}: {{entity.title}} {{entity.url}}"),
        ],
        priority=6,
        use_cases=["Speed up code review turnaround"],
        customization_points=["Review deadline", "Channels"],
        prerequisites=["A source-control integration publishing 'code_review.assigned' events"],
    ),
]


def get_all_templates() -> List[WorkflowTemplate]:
    return list(WORKFLOW_TEMPLATES)


def get_templates_by_category(category: str) -> List[WorkflowTemplate]:
    return [template for template in WORKFLOW_TEMPLATES if template.category == category]


def get_templates_by_difficulty(difficulty: str) -> List[WorkflowTemplate]:
    return [template for template in WORKFLOW_TEMPLATES if template.difficulty == difficulty]


def get_template_by_id(template_id: str) -> Optional[WorkflowTemplate]:
    for template in WORKFLOW_TEMPLATES:
        if template.id == template_id:
            return template
    return None


def search_templates(query: str) -> List[WorkflowTemplate]:
    """
    Case-insensitive substring search over name, description, tags and use cases.

    A blank query matches every template.
    """
    needle = query.strip().lower()
    if not needle:
        return get_all_templates()

    def matches(template: WorkflowTemplate) -> bool:
        haystack = [template.name, template.description, *template.tags, *template.use_cases]
        return any(needle in text.lower() for text in haystack)

    return [template for template in WORKFLOW_TEMPLATES if matches(template)]


def get_categories() -> List[str]:
    """Distinct categories in catalogue order."""
    return list(dict.fromkeys(template.category for template in WORKFLOW_TEMPLATES))


def get_template_stats() -> Dict[str, Any]:
    """Template counts overall, per category and per difficulty."""
    per_category = Counter(template.category for template in WORKFLOW_TEMPLATES)
    per_difficulty = Counter(template.difficulty for template in WORKFLOW_TEMPLATES)
    return {
        "total": len(WORKFLOW_TEMPLATES),
        "by_category": [{"category": category, "count": per_category[category]} for category in get_categories()],
        "by_difficulty": {difficulty: per_difficulty[difficulty] for difficulty in DIFFICULTIES},
    }
