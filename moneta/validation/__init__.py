"""Validation package."""

from moneta.validation.validator import RecurringRuleValidator

__all__ = ["RecurringRuleValidator"]
