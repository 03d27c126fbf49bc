"""Exception hierarchy for budgetcache."""


class BudgetCacheError(Exception):
    """Base exception for all budgetcache errors."""


class TokenizerError(BudgetCacheError):
    """Raised when token estimation cannot be set up or performed."""


class PersistenceError(BudgetCacheError):
    """Raised when a persistence backend operation fails."""


class UnknownStrategyError(BudgetCacheError, KeyError):
    """Raised when a strategy id is not present in the registry."""

    def __init__(self, strategy_id: str) -> None:
        super().__init__(f"Unknown cache strategy: {strategy_id!r}")
        self.strategy_id = strategy_id


class ConfigurationError(BudgetCacheError, ValueError):
    """Raised when settings name an unknown backend or method."""
