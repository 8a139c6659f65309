"""Workflow automation engine: triggers, conditions and actions with execution history."""

__version__ = "1.0.0"
