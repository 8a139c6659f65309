"""Tests for the workflow template catalogue."""

import pytest

from automation_engine.core.exceptions import TemplateNotFoundError, WorkflowValidationError
from automation_engine.core.workflow_templates import (
    WORKFLOW_TEMPLATES,
    get_all_templates,
    get_categories,
    get_template_by_id,
    get_template_stats,
    get_templates_by_category,
    get_templates_by_difficulty,
    search_templates,
)
from automation_engine.models import ExecutionContext, ExecutionStatusEnum, TriggerType

TEMPLATE_IDS = [template.id for template in WORKFLOW_TEMPLATES]


class TestCatalogue:
    """Test cases for catalogue lookups."""

    def test_ids_are_unique(self):
        assert len(TEMPLATE_IDS) == 14
        assert len(set(TEMPLATE_IDS)) == len(TEMPLATE_IDS)

    @pytest.mark.parametrize("template_id", TEMPLATE_IDS)
    def test_every_template_is_a_valid_workflow(self, workflow_manager, template_id):
        template = get_template_by_id(template_id)

        result = workflow_manager.validate_workflow(template.definition)

        assert result.is_valid is True, result.errors
        assert template.definition.category == template.category
        assert template.definition.name == template.name

    def test_get_all_returns_a_copy(self):
        templates = get_all_templates()
        templates.clear()

        assert len(get_all_templates()) == 14

    def test_unknown_id(self):
        assert get_template_by_id("no-such-template") is None

    def test_categories_in_catalogue_order(self):
        assert get_categories() == [
            "project_management", "task_management", "invoice_payment",
            "client_communication", "team_collaboration",
        ]

    def test_by_category_and_difficulty(self):
        invoices = get_templates_by_category("invoice_payment")

        assert {template.id for template in invoices} == {
            "invoice-created-notification", "invoice-payment-received", "invoice-overdue-reminder",
        }
        assert get_templates_by_category("unknown") == []
        assert len(get_templates_by_difficulty("intermediate")) == 5
        assert get_templates_by_difficulty("advanced") == []

    def test_search_is_case_insensitive(self):
        assert {template.id for template in search_templates("INVOICE")} == {
            "invoice-created-notification", "invoice-payment-received", "invoice-overdue-reminder",
        }
        assert "daily-standup-reminder" in {template.id for template in search_templates("standup")}

    def test_search_matches_tags_and_use_cases(self):
        by_tag = {template.id for template in search_templates("morale")}
        by_use_case = {template.id for template in search_templates("turnaround")}

        assert by_tag == {"team-achievement-celebration"}
        assert by_use_case == {"code-review-assignment"}

    def test_blank_search_returns_everything(self):
        assert len(search_templates("  ")) == 14
        assert search_templates("kubernetes") == []

    def test_stats(self):
        stats = get_template_stats()

        assert stats["total"] == 14
        assert sum(entry["count"] for entry in stats["by_category"]) == 14
        assert stats["by_category"][0] == {"category": "project_management", "count": 3}
        assert stats["by_difficulty"] == {"beginner": 9, "intermediate": 5, "advanced": 0}


class TestCreateFromTemplate:
    """Test cases for WorkflowManager.create_from_template."""

    def test_creates_stored_copy(self, workflow_manager):
        workflow = workflow_manager.create_from_template("project-created-notification")

        loaded = workflow_manager.get_workflow(workflow.id)
        template = get_template_by_id("project-created-notification")
        assert loaded.version == 1
        assert loaded.name == template.name
        assert loaded.actions == template.definition.actions
        assert loaded.tags == template.tags

    def test_overrides_replace_top_level_fields(self, workflow_manager):
        workflow = workflow_manager.create_from_template(
            "task-assignment-notification",
            {"name": "Assignments (EU)", "enabled": False, "priority": 1},
        )

        assert workflow.name == "Assignments (EU)"
        assert workflow.enabled is False
        assert workflow.priority == 1
        assert workflow.category == "task_management"

    def test_unknown_template(self, workflow_manager):
        with pytest.raises(TemplateNotFoundError):
            workflow_manager.create_from_template("no-such-template")

    def test_unknown_override_rejected(self, workflow_manager):
        with pytest.raises(WorkflowValidationError) as exc_info:
            workflow_manager.create_from_template("daily-standup-reminder", {"owner": "me"})

        assert exc_info.value.details["validation_errors"] == ["owner: not a workflow field"]
        assert workflow_manager.list_workflows() == []

    def test_invalid_override_rejected(self, workflow_manager):
        with pytest.raises(WorkflowValidationError):
            workflow_manager.create_from_template("daily-standup-reminder", {"actions": []})

    def test_template_workflow_runs(self, workflow_manager, workflow_engine, sender):
        workflow = workflow_manager.create_from_template("invoice-payment-received")
        context = ExecutionContext(
            triggered_by=TriggerType.EVENT,
            event="invoice.paid",
            entity={
                "type": "invoice", "id": "inv-9", "invoice_number": "INV-009", "amount": 1200,
                "client_name": "Acme Corp", "client_email": "billing@acme.example.com",
                "paid_at": "2026-10-01",
            },
        )

        result = workflow_engine.execute(workflow.id, context)

        assert result.status == ExecutionStatusEnum.SUCCESS
        assert [message["channel"] for message in sender.sent] == ["email", "email", "slack"]
        assert sender.sent[0]["recipients"] == ["billing@acme.example.com"]
        assert sender.sent[2]["message"] == "Payment received: INV-009 (1200)"
