"""Base domain adapter interface."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from ..errors import DomainSyncFailure, NotFoundError, StaleStateError, ValidationError, WorkflowError
from ..ledger.base import LedgerBook, LedgerError, UnknownEntityError
from ..requests.types import RequestStatus, RequestType

logger = logging.getLogger(__name__)

# domain status value -> request status (None = out of band)
StatusMap = dict[str, RequestStatus | None]
# request status -> domain status value
TargetMap = dict[RequestStatus, str]


class DomainAdapter(ABC):
    """
    Abstract base class for domain synchronization adapters.

    Each domain module (loan, savings withdrawal, personal savings, account)
    implements this interface. For a domain-backed request the adapter's
    mapping of the domain record's status is the request status of record.
    """

    @property
    @abstractmethod
    def domain_module(self) -> str:
        """The linked-entity module name this adapter handles."""
        ...

    @property
    @abstractmethod
    def request_types(self) -> frozenset[RequestType]:
        """Request types whose domain records this adapter opens."""
        ...

    @abstractmethod
    def exists(self, entity_id: str) -> bool:
        ...

    @abstractmethod
    def status_for(self, entity_id: str) -> RequestStatus | None:
        """
        Map the domain record's current status to a request status.

        Returns None when the domain status has no request equivalent.

        Raises:
            NotFoundError: If the domain record does not exist
        """
        ...

    @abstractmethod
    def can_transition(self, entity_id: str, target: RequestStatus) -> None:
        """
        Check the matching domain transition without performing it.

        Raises:
            DomainSyncFailure: If a domain rule forbids it
        """
        ...

    @abstractmethod
    def apply_transition(
        self,
        entity_id: str,
        expected: RequestStatus,
        target: RequestStatus,
        actor_id: str,
        notes: str = "",
    ) -> tuple[str, RequestStatus | None]:
        """
        Perform the domain transition matching ``target``.

        Atomic: either the domain record moves or nothing changes.

        Returns:
            (new domain status, new request status)

        Raises:
            StaleStateError: If the record's mapped status is no longer ``expected``
            DomainSyncFailure: If a domain rule fails
        """
        ...

    @abstractmethod
    def open_entity(
        self,
        request_type: RequestType,
        content: dict[str, Any],
        initiator_id: str,
    ) -> str:
        """
        Create the domain record a new request will be linked to.

        Returns:
            The new entity id

        Raises:
            ValidationError: If ``content`` does not describe a valid record
        """
        ...

    @abstractmethod
    def domain_status_name(self, entity_id: str) -> str:
        """The domain record's own status name (for logs and history notes)."""
        ...

    @abstractmethod
    def status_aliases(self) -> dict[str, RequestStatus]:
        """Domain status names this module uses, mapped to request statuses."""
        ...


class LedgerAdapter(DomainAdapter):
    """
    Adapter over one of the in-memory domain books.

    Subclasses provide the status tables and the book calls; the
    read-check-write sequence runs under the book's lock.
    """

    status_map: StatusMap = {}
    target_map: TargetMap = {}

    def __init__(self, book: LedgerBook):
        self.book = book

    # -- hooks --

    @abstractmethod
    def _domain_status(self, entity_id: str) -> Enum:
        """Current domain status. Raises UnknownEntityError."""
        ...

    @abstractmethod
    def _check(self, entity_id: str, domain_target: str) -> None:
        """Raise LedgerError if the domain edge is not allowed now."""
        ...

    @abstractmethod
    def _update(self, entity_id: str, domain_target: str, actor_id: str, notes: str) -> None:
        ...

    def _maps_for(self, entity_id: str) -> tuple[StatusMap, TargetMap]:
        return self.status_map, self.target_map

    # -- contract --

    def exists(self, entity_id: str) -> bool:
        try:
            self._domain_status(entity_id)
        except UnknownEntityError:
            return False
        return True

    def status_for(self, entity_id: str) -> RequestStatus | None:
        with self.book.lock:
            status_map, _ = self._maps_for(entity_id)
            return status_map.get(self._current(entity_id).value)

    def can_transition(self, entity_id: str, target: RequestStatus) -> None:
        with self.book.lock:
            domain_target = self._domain_target(entity_id, target)
            try:
                self._check(entity_id, domain_target)
            except UnknownEntityError as e:
                raise NotFoundError(str(e)) from e
            except LedgerError as e:
                raise self._failure(entity_id, e) from e

    def apply_transition(
        self,
        entity_id: str,
        expected: RequestStatus,
        target: RequestStatus,
        actor_id: str,
        notes: str = "",
    ) -> tuple[str, RequestStatus | None]:
        with self.book.lock:
            status_map, _ = self._maps_for(entity_id)
            current = status_map.get(self._current(entity_id).value)
            if current != expected:
                raise StaleStateError(
                    f"{self.domain_module} {entity_id} maps to "
                    f"{current.value if current else 'no request status'}, expected {expected.value}",
                    expected=expected.value,
                    actual=current.value if current else None,
                )
            domain_target = self._domain_target(entity_id, target)
            try:
                self._update(entity_id, domain_target, actor_id, notes)
            except LedgerError as e:
                raise self._failure(entity_id, e) from e
            logger.info(f"{self.domain_module} {entity_id} -> {domain_target} ({target.value})")
            return domain_target, status_map.get(domain_target)

    def domain_status_name(self, entity_id: str) -> str:
        with self.book.lock:
            return self._current(entity_id).value

    def status_aliases(self) -> dict[str, RequestStatus]:
        return {name: status for name, status in self.status_map.items() if status is not None}

    # -- helpers --

    def _current(self, entity_id: str) -> Enum:
        try:
            return self._domain_status(entity_id)
        except UnknownEntityError as e:
            raise NotFoundError(str(e)) from e

    def _domain_target(self, entity_id: str, target: RequestStatus) -> str:
        _, target_map = self._maps_for(entity_id)
        domain_target = target_map.get(target)
        if domain_target is None:
            raise DomainSyncFailure(
                f"{self.domain_module} has no transition for request status {target.value}",
                domain_module=self.domain_module,
                entity_id=entity_id,
            )
        return domain_target

    def _failure(self, entity_id: str, error: LedgerError) -> DomainSyncFailure:
        logger.warning(f"{self.domain_module} {entity_id}: {error}")
        return DomainSyncFailure(str(error), domain_module=self.domain_module, entity_id=entity_id)

    @staticmethod
    def _invalid_content(error: LedgerError) -> WorkflowError:
        if isinstance(error, UnknownEntityError):
            return NotFoundError(str(error))
        return ValidationError(str(error))


def identity_targets(*statuses: RequestStatus, **overrides: str) -> TargetMap:
    """Target table where each request status has a same-named domain status."""
    targets: TargetMap = {s: s.value for s in statuses}
    for name, domain_status in overrides.items():
        targets[RequestStatus(name)] = domain_status
    return targets
