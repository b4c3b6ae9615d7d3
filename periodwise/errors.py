from __future__ import annotations


class PeriodEngineError(ValueError):
    """Base class for errors raised by the period engine."""


class ConfigurationError(PeriodEngineError):
    """A budget recurrence configuration is missing, mixed, or out of range."""


class PeriodNotConfiguredError(PeriodEngineError):
    def __init__(self, budget_id: object | None = None) -> None:
        self.budget_id = budget_id
        super().__init__("Budget period is not configured.")


class BudgetNotFoundError(PeriodEngineError):
    def __init__(self, budget_id: object) -> None:
        self.budget_id = budget_id
        super().__init__("Budget not found.")
