"""
Approval workflow engine.

Every transition runs the same guard sequence before anything is written:

    (a) the request exists and is not terminal
    (b) the action has an edge out of the current status
    (c) the policy permits the actor (for cancel: the actor is the initiator)
    (d) for a domain-backed request, the domain record can make the matching move

Then the domain record moves (if any) and the request is written with a
compare-and-set on its current status, appending exactly one history entry.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from ..adapters.base import DomainAdapter
from ..adapters.registry import AdapterRegistry
from ..errors import (
    DomainSyncFailure,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    StaleStateError,
    ValidationError,
    WorkflowError,
)
from ..notifications.events import EventType, role_recipient
from ..policy.policy import explain
from ..policy.types import GatedAction, Module, RoleApprovalProfile
from ..requests.chains import ChainCatalog
from ..requests.store import DEFAULT_PAGE_SIZE, ListFilter, Page, RequestStore
from ..requests.types import (
    TYPE_MODULES,
    HistoryEntry,
    LinkedEntity,
    Priority,
    Request,
    RequestStatus,
    RequestType,
    StatusUpdate,
    StepStatus,
    utc_now,
)
from .transitions import ACTION_RULES, Action, ActionRule, parse_action

if TYPE_CHECKING:
    from ..metrics.projection import ApprovalMetrics
    from ..notifications.dispatcher import NotificationDispatcher
    from ..policy.roles import RoleDirectory

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

# amount >= threshold -> priority
DEFAULT_PRIORITY_THRESHOLDS: dict[str, float] = {
    "HIGH": 1_000_000,
    "MEDIUM": 100_000,
}


class ApprovalEngine:
    """
    The request state machine.

    Consumes the policy, the request store and the domain adapters; emits
    notifications and invalidates the metrics projection after each write.
    """

    def __init__(
        self,
        store: RequestStore,
        adapters: AdapterRegistry | None = None,
        roles: RoleDirectory | None = None,
        chains: ChainCatalog | None = None,
        notifier: NotificationDispatcher | None = None,
        metrics: ApprovalMetrics | None = None,
        priority_thresholds: dict[str, float] | None = None,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.store = store
        self.adapters = adapters or AdapterRegistry()
        self.roles = roles
        self.chains = chains or ChainCatalog()
        self.notifier = notifier
        self.metrics = metrics
        self.priority_thresholds = dict(priority_thresholds or DEFAULT_PRIORITY_THRESHOLDS)
        self.default_page_size = default_page_size

    # =========================================================================
    # Identity
    # =========================================================================

    def resolve_actor(self, actor_id: str) -> RoleApprovalProfile:
        """
        Look up the actor's current role profile.

        Raises:
            ForbiddenError: If no role directory is configured or the actor has no role
        """
        if not actor_id:
            raise ForbiddenError("Actor identity required")
        if self.roles is None:
            raise ForbiddenError("No role directory configured")
        return self.roles.get_actor_role_profile(actor_id)

    # =========================================================================
    # Create / read / delete
    # =========================================================================

    def create_request(
        self,
        request_type: RequestType,
        content: dict[str, Any],
        initiator_id: str,
        linked_entity: LinkedEntity | None = None,
        priority: Priority | None = None,
    ) -> Request:
        """
        Create a PENDING request at level 1 with a fresh approval chain.

        A domain-typed request without ``linked_entity`` opens its domain
        record first. A supplied ``linked_entity`` must exist and read PENDING.

        Raises:
            ValidationError: On malformed content or a linked record not PENDING
            NotFoundError: If the linked record does not exist
        """
        if not initiator_id:
            raise ValidationError("initiator_id is required")
        if not isinstance(content, dict):
            raise ValidationError("content must be an object")

        if linked_entity is not None:
            adapter = self.adapters.get(linked_entity.domain_module)
            mapped = adapter.status_for(linked_entity.entity_id)
            if mapped != RequestStatus.PENDING:
                raise ValidationError(
                    f"Linked {linked_entity} is "
                    f"{mapped.value if mapped else 'out of band'}; only PENDING records can be linked"
                )
        else:
            adapter = self.adapters.for_type(request_type)
            if adapter is not None:
                entity_id = adapter.open_entity(request_type, content, initiator_id)
                linked_entity = LinkedEntity(domain_module=adapter.domain_module, entity_id=entity_id)

        request = Request(
            id="",
            type=request_type,
            initiator_id=initiator_id,
            module=TYPE_MODULES.get(request_type, Module.ADMIN),
            status=RequestStatus.PENDING,
            linked_entity=linked_entity,
            content=content,
            priority=priority or self.derive_priority(content),
            approval_steps=self.chains.build(request_type),
            current_approval_level=1,
        )
        created = self.store.create(request)

        self._invalidate_metrics()
        self._notify(created.initiator_id, EventType.CREATED, created)
        first = created.step_at(1)
        self._notify(role_recipient(first.approver_role) if first else None, EventType.AWAITING_ACTION, created)
        return created

    def get_request(self, request_id: str) -> Request:
        """
        Read a request, re-deriving a domain-backed status from its record.

        Raises:
            NotFoundError: If the request does not exist
        """
        request = self.store.get(request_id)
        if request is None:
            raise NotFoundError(f"Request not found: {request_id}")
        return self._heal(request)

    def list_requests(
        self,
        filters: ListFilter | None = None,
        page: int = 1,
        limit: int | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Page:
        """
        One page of requests; domain-backed entries are re-derived.

        When healing moves any row the page is queried again, so the rows
        and ``total`` agree with the filters. A record whose domain status
        changed but which the stored status kept out of the filter is only
        picked up once it has been read (and healed) some other way.
        """
        if limit is None:
            limit = self.default_page_size
        result = self.store.list_by_filter(filters, page, limit, sort_by, sort_order)
        healed = [self._heal(r) for r in result.data]
        if any(h.status != r.status for h, r in zip(healed, result.data)):
            result = self.store.list_by_filter(filters, page, limit, sort_by, sort_order)
            healed = [self._heal(r) for r in result.data]
        result.data = healed
        return result

    def history(self, request_id: str) -> list[HistoryEntry]:
        return list(self.get_request(request_id).history)

    def delete_request(self, request_id: str, actor: RoleApprovalProfile) -> None:
        """
        Hard-delete an untouched PENDING request. Initiator only.

        A linked domain record is cancelled first.

        Raises:
            NotFoundError, ForbiddenError, InvalidTransitionError, StaleStateError
        """
        request = self.get_request(request_id)
        if actor.actor_id != request.initiator_id:
            logger.warning(f"Delete of {request_id} denied for {actor.actor_id}: not the initiator")
            raise ForbiddenError("Only the initiator can delete a request")
        if request.status != RequestStatus.PENDING or request.history:
            raise InvalidTransitionError(
                f"Request {request_id} has been acted on ({request.status.value}); cancel it instead"
            )

        if request.linked_entity is not None:
            adapter = self._adapter_for(request)
            self._domain_call(
                request, adapter.apply_transition,
                request.linked_entity.entity_id, RequestStatus.PENDING, RequestStatus.CANCELLED,
                actor.actor_id, "request deleted",
            )
        self.store.delete(request_id, expected_status=RequestStatus.PENDING)
        logger.info(f"Request {request_id} deleted by {actor.actor_id}")
        first = request.step_at(1)
        self._notify(role_recipient(first.approver_role) if first else None, EventType.DELETED, request)
        self._invalidate_metrics()

    # =========================================================================
    # Transitions
    # =========================================================================

    def review(self, request_id: str, actor: RoleApprovalProfile, notes: str = "") -> Request:
        """PENDING -> IN_REVIEW."""
        return self._transition(request_id, Action.REVIEW, actor, notes)

    def mark_reviewed(self, request_id: str, actor: RoleApprovalProfile, notes: str = "") -> Request:
        """IN_REVIEW -> REVIEWED."""
        return self._transition(request_id, Action.MARK_REVIEWED, actor, notes)

    def approve(self, request_id: str, actor: RoleApprovalProfile, notes: str = "") -> Request:
        """REVIEWED -> APPROVED."""
        return self._transition(request_id, Action.APPROVE, actor, notes)

    def complete(self, request_id: str, actor: RoleApprovalProfile, notes: str = "") -> Request:
        """APPROVED -> COMPLETED (disburse / pay out / apply)."""
        return self._transition(request_id, Action.COMPLETE, actor, notes)

    def reject(self, request_id: str, actor: RoleApprovalProfile, reason: str) -> Request:
        """PENDING / IN_REVIEW / REVIEWED -> REJECTED. ``reason`` is mandatory."""
        return self._transition(request_id, Action.REJECT, actor, reason)

    def cancel(self, request_id: str, actor: RoleApprovalProfile, notes: str = "") -> Request:
        """PENDING -> CANCELLED, by the initiator."""
        return self._transition(request_id, Action.CANCEL, actor, notes)

    def transition(
        self,
        request_id: str,
        action: Action | str,
        actor: RoleApprovalProfile,
        notes: str = "",
    ) -> Request:
        """Dispatch a transition by action name."""
        if not isinstance(action, Action):
            action = parse_action(action)
        return self._transition(request_id, action, actor, notes)

    def _transition(
        self,
        request_id: str,
        action: Action,
        actor: RoleApprovalProfile,
        notes: str,
    ) -> Request:
        notes = (notes or "").strip()
        if action == Action.REJECT and not notes:
            raise ValidationError("A rejection reason is required")

        rule = ACTION_RULES[action]
        request = self.get_request(request_id)

        # (a) terminal
        if request.status.is_terminal:
            raise InvalidTransitionError(
                f"Request {request_id} is already {request.status.value}; cannot {action.value}"
            )
        # (b) edge
        if request.status not in rule.sources:
            raise InvalidTransitionError(
                f"Cannot {action.value} request {request_id} from {request.status.value}"
            )
        # (c) policy
        self._authorize(request, rule, actor)
        # (d) domain legality
        expected = request.status
        adapter = self._adapter_for(request) if request.linked_entity else None
        if adapter is not None:
            entity_id = request.linked_entity.entity_id
            try:
                self._domain_call(request, adapter.can_transition, entity_id, rule.target)
            except DomainSyncFailure:
                # A concurrent writer may have moved the record since our read.
                if adapter.status_for(entity_id) != expected:
                    raise StaleStateError(
                        f"{request.linked_entity} moved while {action.value} was pending",
                        expected=expected.value,
                    )
                raise

        to_status = rule.target
        if adapter is not None:
            domain_status, mapped = self._domain_call(
                request, adapter.apply_transition,
                request.linked_entity.entity_id, expected, rule.target, actor.actor_id or "", notes,
            )
            if mapped is not None:
                to_status = mapped
            logger.info(f"Request {request_id}: {request.linked_entity} now {domain_status}")

        update = self._build_update(request, rule, to_status, actor, notes)
        try:
            updated = self.store.compare_and_set(request_id, expected, update)
        except StaleStateError:
            logger.warning(
                f"Stale {action.value} on {request_id} by {actor.actor_id}: "
                f"no longer {expected.value}"
            )
            raise

        logger.info(
            f"Request {request_id} {action.value}: {expected.value} -> {updated.status.value} "
            f"by {actor.actor_id} ({actor.role})"
        )
        self._invalidate_metrics()
        self._announce(updated, expected)
        return updated

    def _authorize(self, request: Request, rule: ActionRule, actor: RoleApprovalProfile) -> None:
        if rule.action == Action.CANCEL:
            if actor.actor_id != request.initiator_id:
                logger.warning(f"Cancel of {request.id} denied for {actor.actor_id}: not the initiator")
                raise ForbiddenError("Only the initiator can cancel a request")
            return

        gated = GatedAction(
            permission=rule.permission,
            module=request.module,
            min_approval_level=rule.min_level,
        )
        reason = explain(actor, gated)
        if reason is not None:
            logger.warning(f"{rule.action.value} on {request.id} denied for {actor.actor_id}: {reason}")
            raise ForbiddenError(reason)

    def _build_update(
        self,
        request: Request,
        rule: ActionRule,
        to_status: RequestStatus,
        actor: RoleApprovalProfile,
        notes: str,
    ) -> StatusUpdate:
        now = utc_now()
        level = request.current_approval_level
        steps = [replace(s) for s in request.approval_steps]

        current = next((s for s in steps if s.level == level), None)
        if rule.step_status is not None and current is not None and current.status == StepStatus.PENDING:
            current.status = rule.step_status
            current.approver_id = actor.actor_id
            current.acted_at = now
            current.notes = notes or current.notes

        if to_status in (RequestStatus.REJECTED, RequestStatus.CANCELLED):
            for step in steps:
                if step.status == StepStatus.PENDING:
                    step.status = StepStatus.SKIPPED

        if rule.advances_level:
            level = min(level + 1, request.chain_length)

        return StatusUpdate(
            to_status=to_status,
            entry=HistoryEntry(
                from_status=request.status,
                to_status=to_status,
                actor_id=actor.actor_id or "",
                timestamp=now,
                notes=notes,
            ),
            current_approval_level=level,
            approval_steps=steps,
            completed_at=now if to_status.is_terminal else None,
        )

    # =========================================================================
    # Domain synchronization
    # =========================================================================

    def _adapter_for(self, request: Request) -> DomainAdapter:
        return self.adapters.get(request.linked_entity.domain_module)

    def _domain_call(self, request: Request, fn, *args):
        """Call into an adapter; anything outside the error taxonomy becomes DomainSyncFailure."""
        try:
            return fn(*args)
        except WorkflowError as e:
            if isinstance(e, DomainSyncFailure):
                logger.warning(f"Domain sync failed for {request.id} ({request.linked_entity}): {e.message}")
            raise
        except Exception as e:
            logger.warning(f"Domain adapter error for {request.id} ({request.linked_entity}): {e}")
            raise DomainSyncFailure(
                f"{request.linked_entity.domain_module} adapter failed: {e}",
                domain_module=request.linked_entity.domain_module,
                entity_id=request.linked_entity.entity_id,
            ) from e

    def _heal(self, request: Request) -> Request:
        """
        Re-derive a domain-backed request's status from its domain record.

        A mismatch is written back with a ``system`` history entry. An
        out-of-band domain status (no mapping) leaves the request as it is.
        """
        if request.linked_entity is None or not self.adapters.has(request.linked_entity.domain_module):
            return request

        adapter = self._adapter_for(request)
        entity_id = request.linked_entity.entity_id
        try:
            mapped = adapter.status_for(entity_id)
        except NotFoundError:
            logger.warning(f"Request {request.id}: linked {request.linked_entity} not found")
            return request

        if mapped is None or mapped == request.status:
            return request

        domain_status = adapter.domain_status_name(entity_id)
        if request.status.is_terminal:
            logger.warning(
                f"Request {request.id} is {request.status.value} but {request.linked_entity} "
                f"reads {domain_status}; terminal requests are not re-synchronized"
            )
            return request

        now = utc_now()
        update = StatusUpdate(
            to_status=mapped,
            entry=HistoryEntry(
                from_status=request.status,
                to_status=mapped,
                actor_id=SYSTEM_ACTOR,
                timestamp=now,
                notes=f"synchronized from {request.linked_entity.domain_module} status {domain_status}",
            ),
            current_approval_level=request.current_approval_level,
            completed_at=now if mapped.is_terminal else None,
        )
        try:
            healed = self.store.compare_and_set(request.id, request.status, update)
        except StaleStateError:
            # Someone else wrote first; their copy is at least as fresh.
            fresh = self.store.get(request.id)
            return fresh if fresh is not None else request

        logger.info(
            f"Request {request.id} synchronized {request.status.value} -> {mapped.value} "
            f"from {request.linked_entity} ({domain_status})"
        )
        self._invalidate_metrics()
        self._notify(healed.initiator_id, EventType.SYNCHRONIZED, healed)
        return healed

    # =========================================================================
    # Helpers
    # =========================================================================

    def derive_priority(self, content: dict[str, Any]) -> Priority:
        """Priority from ``content['amount']`` against the configured thresholds."""
        raw = content.get("amount")
        if raw is None:
            return Priority.NORMAL
        try:
            amount = Decimal(str(raw))
        except (InvalidOperation, ValueError):
            return Priority.NORMAL
        for name in ("HIGH", "MEDIUM"):
            threshold = self.priority_thresholds.get(name)
            if threshold is not None and amount >= Decimal(str(threshold)):
                return Priority(name)
        return Priority.NORMAL

    def _invalidate_metrics(self) -> None:
        if self.metrics is not None:
            self.metrics.invalidate()

    def _announce(self, request: Request, previous: RequestStatus) -> None:
        self._notify(request.initiator_id, EventType.TRANSITIONED, request, from_status=previous.value)
        if not request.status.is_terminal:
            step = request.step_at(request.current_approval_level)
            if step is not None and step.status == StepStatus.PENDING:
                self._notify(role_recipient(step.approver_role), EventType.AWAITING_ACTION, request)

    def _notify(self, recipient: str | None, event: EventType, request: Request, **extra: Any) -> None:
        if self.notifier is None or not recipient:
            return
        payload = {
            "request_id": request.id,
            "type": request.type.value,
            "label": request.type.label,
            "status": request.status.value,
            "level": request.current_approval_level,
            **extra,
        }
        self.notifier.notify(recipient, event.value, payload)
