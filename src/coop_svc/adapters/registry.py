"""Adapter registry - maps domain modules and request types to adapters."""

from __future__ import annotations

from ..errors import ValidationError
from ..requests.types import RequestType
from .base import DomainAdapter


class AdapterRegistry:
    """
    Registry of domain adapters by domain module.

    Adapters are registered at startup and looked up when a request is
    created, read or transitioned.
    """

    def __init__(self):
        self._adapters: dict[str, DomainAdapter] = {}
        self._by_type: dict[RequestType, DomainAdapter] = {}

    def register(self, adapter: DomainAdapter) -> None:
        """Register an adapter for its domain module and request types."""
        self._adapters[adapter.domain_module] = adapter
        for request_type in adapter.request_types:
            self._by_type[request_type] = adapter

    def get(self, domain_module: str) -> DomainAdapter:
        """
        Get adapter for a domain module.

        Raises:
            ValidationError: If no adapter is registered for the module
        """
        adapter = self._adapters.get(domain_module)
        if adapter is None:
            raise ValidationError(f"No adapter registered for domain module: {domain_module}")
        return adapter

    def for_type(self, request_type: RequestType) -> DomainAdapter | None:
        """The adapter that opens records for a request type, if any."""
        return self._by_type.get(request_type)

    def has(self, domain_module: str) -> bool:
        """Check if an adapter is registered for a domain module."""
        return domain_module in self._adapters

    def all_modules(self) -> list[str]:
        """Get all registered domain modules."""
        return list(self._adapters.keys())

    def all_adapters(self) -> list[DomainAdapter]:
        return list(self._adapters.values())


def default_registry() -> AdapterRegistry:
    """Registry with one adapter per built-in domain module, each on a fresh book."""
    from .account import AccountAdapter
    from .loan import LoanAdapter
    from .personal_savings import PersonalSavingsAdapter
    from .withdrawal import SavingsWithdrawalAdapter

    registry = AdapterRegistry()
    for adapter in (
        LoanAdapter(),
        SavingsWithdrawalAdapter(),
        PersonalSavingsAdapter(),
        AccountAdapter(),
    ):
        registry.register(adapter)
    return registry
