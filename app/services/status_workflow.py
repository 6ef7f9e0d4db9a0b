"""
Status Workflow Engine - role-gated state machine for report transitions.

DESIGN PRINCIPLES:
- The transition graph is data (TRANSITION_RULES), not if/else chains
- Every authorization decision about status lives here; routes never re-check roles
- Validation is pure: no store access, no audit, no notifications
- Denials are returned as values with an enumerated reason
"""

from typing import Callable, Dict, FrozenSet, List, NamedTuple, Optional, Tuple, Union
import logging

from app.models.workflow import (
    ADMIN_ROLES,
    TERMINAL_STATUSES,
    Actor,
    DenyReason,
    Report,
    ReportStatus,
    Role,
    TransitionExtra,
    normalize_photos,
)

logger = logging.getLogger(__name__)


# Audit actions recorded for accepted transitions
ACTION_STATUS_CHANGED = "status_changed"
ACTION_ASSIGNED = "assigned"
ACTION_MISROUTED = "misrouted"
ACTION_FORCE_CLOSED = "force_closed"
ACTION_DELETED = "deleted"

Precondition = Callable[["TransitionValidator", Report, Actor, TransitionExtra], Optional[str]]


class TransitionRule(NamedTuple):
    source: ReportStatus
    target: ReportStatus
    roles: FrozenSet[Role]
    assigned_officer: bool  # an officer listed in assigned_officer_ids may also perform it
    action: str
    precondition: Optional[Precondition] = None


class Decision(NamedTuple):
    ok: bool
    reason: Optional[DenyReason] = None
    message: Optional[str] = None
    rule: Optional[TransitionRule] = None


def resolve_assignment(report: Report, target: ReportStatus, actor: Actor, extra: TransitionExtra) -> List[str]:
    """
    Officer ids the report will be assigned to after the transition.

    An explicit list in extra replaces the assignment. An officer moving an
    unassigned report to `assigned` without a list assigns themselves.
    """
    if extra.assigned_officer_ids is not None:
        resolved = []
        for officer_id in extra.assigned_officer_ids:
            officer_id = officer_id.strip()
            if officer_id and officer_id not in resolved:
                resolved.append(officer_id)
        return resolved
    if target == ReportStatus.ASSIGNED and actor.role == Role.OFFICER and not report.assigned_officer_ids:
        return [actor.id]
    return list(report.assigned_officer_ids)


def _require_after_photos(validator, report, actor, extra):
    total = len(report.photos_after) + len(normalize_photos(extra.photos_after))
    if total == 0:
        return "after photos are required before requesting verification"
    if total > validator.max_after_photos:
        return f"at most {validator.max_after_photos} after photos are allowed"
    return None


def _require_misroute_reason(validator, report, actor, extra):
    if not extra.misroute_reason or not extra.misroute_reason.strip():
        return "a misroute reason is required"
    return None


ADMINS = frozenset(ADMIN_ROLES)
SUPERADMIN_ONLY = frozenset({Role.SUPERADMIN})

# Explicit edges. Generic edges (force close, superadmin delete) are merged in
# by build_transition_table.
TRANSITION_RULES: Tuple[TransitionRule, ...] = (
    TransitionRule(ReportStatus.SUBMITTED, ReportStatus.ASSIGNED,
                   ADMINS | {Role.OFFICER}, False, ACTION_ASSIGNED),
    TransitionRule(ReportStatus.SUBMITTED, ReportStatus.DELETED,
                   ADMINS, False, ACTION_DELETED),
    TransitionRule(ReportStatus.ASSIGNED, ReportStatus.IN_PROGRESS,
                   ADMINS, True, ACTION_STATUS_CHANGED),
    TransitionRule(ReportStatus.IN_PROGRESS, ReportStatus.AWAITING_VERIFICATION,
                   ADMINS, True, ACTION_STATUS_CHANGED, _require_after_photos),
    TransitionRule(ReportStatus.IN_PROGRESS, ReportStatus.MISROUTED,
                   ADMINS, True, ACTION_MISROUTED, _require_misroute_reason),
    TransitionRule(ReportStatus.MISROUTED, ReportStatus.ASSIGNED,
                   ADMINS, False, ACTION_ASSIGNED),
    TransitionRule(ReportStatus.AWAITING_VERIFICATION, ReportStatus.VERIFIED,
                   ADMINS, False, ACTION_STATUS_CHANGED),
    TransitionRule(ReportStatus.VERIFIED, ReportStatus.CLOSED,
                   ADMINS, False, ACTION_STATUS_CHANGED),
)


def build_transition_table(officer_can_verify: bool = False) -> Dict[Tuple[ReportStatus, ReportStatus], TransitionRule]:
    """
    Compile the explicit and generic edges into one (source, target) -> rule map.

    Where a generic edge overlaps an explicit one the allowed roles are merged
    and the explicit rule keeps its action and precondition.
    """
    table: Dict[Tuple[ReportStatus, ReportStatus], TransitionRule] = {}
    for rule in TRANSITION_RULES:
        if officer_can_verify and rule.target == ReportStatus.VERIFIED:
            rule = rule._replace(assigned_officer=True)
        table[(rule.source, rule.target)] = rule

    def merge(rule: TransitionRule):
        key = (rule.source, rule.target)
        existing = table.get(key)
        if existing is None:
            table[key] = rule
        else:
            table[key] = existing._replace(roles=existing.roles | rule.roles)

    for status in ReportStatus:
        # Administrative override: any non-terminal state may be closed
        if status not in TERMINAL_STATUSES:
            merge(TransitionRule(status, ReportStatus.CLOSED, ADMINS, False, ACTION_FORCE_CLOSED))
        # Soft delete from anywhere (restore is a separate operation)
        if status != ReportStatus.DELETED:
            merge(TransitionRule(status, ReportStatus.DELETED, SUPERADMIN_ONLY, False, ACTION_DELETED))

    return table


def transitions_by_source(table: Dict[Tuple[ReportStatus, ReportStatus], TransitionRule]) -> Dict[ReportStatus, FrozenSet[ReportStatus]]:
    graph = {status: set() for status in ReportStatus}
    for source, target in table:
        graph[source].add(target)
    return {status: frozenset(targets) for status, targets in graph.items()}


class TransitionValidator:
    """
    Pure validator for report status transitions.

    Order of checks:
    1. The edge (current → requested) exists, else InvalidTransition
    2. The actor's role / assignment permits it, else Unauthorized
    3. Edge preconditions hold, else PreconditionFailed
    """

    def __init__(self, officer_can_verify: bool = False, max_after_photos: int = 10):
        self.officer_can_verify = officer_can_verify
        self.max_after_photos = max_after_photos
        self.table = build_transition_table(officer_can_verify)
        self.graph = transitions_by_source(self.table)

    def get_rule(self, current: ReportStatus, requested: ReportStatus) -> Optional[TransitionRule]:
        return self.table.get((current, requested))

    def is_permitted(self, rule: TransitionRule, report: Report, actor: Actor) -> bool:
        if actor.role in rule.roles:
            return True
        return rule.assigned_officer and actor.role == Role.OFFICER and report.is_assigned_to(actor.id)

    def validate(
        self,
        report: Report,
        requested_status: Union[str, ReportStatus],
        actor: Actor,
        extra: Optional[TransitionExtra] = None
    ) -> Decision:
        """
        Decide whether actor may move report to requested_status.

        Args:
            report: Current report state
            requested_status: Target status (unknown strings are invalid transitions)
            actor: Acting principal
            extra: Data supplied with the request (photos, reason, assignment)

        Returns:
            Decision with ok=True and the matched rule, or ok=False with a DenyReason
        """
        extra = extra or TransitionExtra()
        try:
            target = ReportStatus(requested_status)
        except ValueError:
            return Decision(False, DenyReason.INVALID_TRANSITION, f"Unknown status: {requested_status}")

        rule = self.get_rule(report.status, target)
        if rule is None:
            allowed = sorted(s.value for s in self.graph.get(report.status, frozenset()))
            return Decision(
                False,
                DenyReason.INVALID_TRANSITION,
                f"Invalid status transition: {report.status.value} → {target.value}. "
                f"Allowed transitions from {report.status.value}: {allowed}"
            )

        if not self.is_permitted(rule, report, actor):
            return Decision(
                False,
                DenyReason.UNAUTHORIZED,
                f"Role {actor.role.value} may not move report from {report.status.value} to {target.value}"
            )

        if rule.precondition is not None:
            problem = rule.precondition(self, report, actor, extra)
            if problem:
                return Decision(False, DenyReason.PRECONDITION_FAILED, problem)

        if extra.photos_after:
            total = len(report.photos_after) + len(normalize_photos(extra.photos_after))
            if total > self.max_after_photos:
                return Decision(
                    False,
                    DenyReason.PRECONDITION_FAILED,
                    f"at most {self.max_after_photos} after photos are allowed"
                )

        return Decision(True, rule=rule)

    def can_work_on(self, report: Report, actor: Actor) -> bool:
        """Admins, or an officer assigned to the report."""
        if actor.role in ADMIN_ROLES:
            return True
        return actor.role == Role.OFFICER and report.is_assigned_to(actor.id)

    def validate_after_photos(self, report: Report, actor: Actor, photos: List[str]) -> Decision:
        """Attaching after-photos outside a status change (no status edge involved)."""
        if not self.can_work_on(report, actor):
            return Decision(False, DenyReason.UNAUTHORIZED, "Only an assigned officer or an admin may add after photos")
        if report.status not in (ReportStatus.ASSIGNED, ReportStatus.IN_PROGRESS):
            return Decision(
                False,
                DenyReason.PRECONDITION_FAILED,
                f"After photos cannot be added while the report is {report.status.value}"
            )
        if not photos:
            return Decision(False, DenyReason.PRECONDITION_FAILED, "No photos supplied")
        if len(report.photos_after) + len(photos) > self.max_after_photos:
            return Decision(
                False,
                DenyReason.PRECONDITION_FAILED,
                f"at most {self.max_after_photos} after photos are allowed"
            )
        return Decision(True)

    def validate_restore(self, report: Report, actor: Actor) -> Decision:
        """Restore is an administrative operation outside the transition graph."""
        if report.status != ReportStatus.DELETED:
            return Decision(False, DenyReason.INVALID_TRANSITION, "Only deleted reports can be restored")
        if actor.role not in ADMIN_ROLES:
            return Decision(False, DenyReason.UNAUTHORIZED, f"Role {actor.role.value} may not restore reports")
        return Decision(True)

    def allowed_transitions(self, report: Report, actor: Actor) -> List[str]:
        """
        Targets the actor may request from the report's current status.

        Preconditions that depend on request data (photos, reason) are not
        evaluated here.
        """
        allowed = []
        for target in sorted(self.graph.get(report.status, frozenset()), key=lambda s: s.value):
            rule = self.table[(report.status, target)]
            if self.is_permitted(rule, report, actor):
                allowed.append(target.value)
        return allowed
