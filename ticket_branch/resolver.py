"""
Base reference resolution for ticket-branch.

Decides which existing reference a ticket's branch is created from:

1. the parent ticket's branch, when the ticket is a sub-task and the
   parent already has a branch;
2. the maintenance branch of the ticket's target version;
3. the default integration reference.

The rules are tried in order and the first match wins. ``resolve`` is a
pure function of the ticket, the known references and the settings.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .config import (
    AppConfig,
    NamingConfig,
    PARENT_FALLBACK_OWN_LABEL,
    PARENT_FALLBACK_PARENT_LABEL,
)
from .models import BaseKind, ResolutionResult, Ticket
from .naming import derive_branch_name, matches_ticket


logger = logging.getLogger(__name__)


class ResolutionError(Exception):
    """No valid base reference can be determined for a ticket."""

    kind = "ResolutionError"

    def __init__(self, ticket_id: int, message: str):
        super().__init__(f"Ticket #{ticket_id}: {message}")
        self.ticket_id = ticket_id


class AmbiguousParent(ResolutionError):
    """Several branches match the parent ticket."""

    kind = "AmbiguousParent"

    def __init__(self, ticket_id: int, parent_id: int, candidates: list[str]):
        super().__init__(
            ticket_id,
            f"parent #{parent_id} matches several branches: {', '.join(candidates)}",
        )
        self.parent_id = parent_id
        self.candidates = candidates


class NoDefaultRef(ResolutionError):
    """The default integration reference does not exist."""

    kind = "NoDefaultRef"

    def __init__(self, ticket_id: int, default_ref: str):
        super().__init__(
            ticket_id,
            f"default reference '{default_ref}' not found (try fetching the remote)",
        )
        self.default_ref = default_ref


class BranchExists(ResolutionError):
    """The ticket already has a branch."""

    kind = "BranchExists"

    def __init__(self, ticket_id: int, new_branch: str, existing: list[str]):
        super().__init__(
            ticket_id,
            f"cannot create '{new_branch}', branch already exists: {', '.join(existing)}",
        )
        self.new_branch = new_branch
        self.existing = existing


@dataclass(frozen=True)
class ResolverSettings:
    """Inputs of the resolver besides the ticket and the references."""

    default_ref: str = "origin/master"
    remote: str = "origin"
    naming: NamingConfig = field(default_factory=lambda: NamingConfig(branch_template="{id}"))
    parent_fallback: str = PARENT_FALLBACK_OWN_LABEL

    @classmethod
    def from_config(cls, config: AppConfig) -> "ResolverSettings":
        return cls(
            default_ref=config.git.default_ref,
            remote=config.git.remote,
            naming=config.naming,
            parent_fallback=config.resolution.parent_fallback,
        )

    def short_name(self, ref: str) -> str:
        """Strip the remote prefix from a remote-tracking reference."""
        prefix = f"{self.remote}/"
        return ref[len(prefix):] if ref.startswith(prefix) else ref


# A rule returns the chosen base reference and its kind, or None to pass
Rule = Callable[[Ticket, frozenset, ResolverSettings], Optional[tuple[str, BaseKind]]]


def _ticket_branches(ticket_id: int, known_refs: Iterable[str], settings: ResolverSettings) -> dict[str, list[str]]:
    """Group references belonging to a ticket by their short name."""
    groups: dict[str, list[str]] = {}
    for ref in sorted(known_refs):
        short = settings.short_name(ref)
        if matches_ticket(short, ticket_id, settings.naming):
            groups.setdefault(short, []).append(ref)
    return groups


def _lookup_label(label: str, known_refs: frozenset, settings: ResolverSettings) -> Optional[str]:
    """Find a maintenance label, preferring the remote-tracking copy."""
    for candidate in (f"{settings.remote}/{label}", label):
        if candidate in known_refs:
            return candidate
    return None


def parent_rule(ticket: Ticket, known_refs: frozenset, settings: ResolverSettings) -> Optional[tuple[str, BaseKind]]:
    """Branch from the parent ticket's branch when it exists."""
    if ticket.parent_id is None:
        return None

    groups = _ticket_branches(ticket.parent_id, known_refs, settings)
    if not groups:
        logger.info(f"Parent #{ticket.parent_id} has no branch")
        return None
    if len(groups) > 1:
        candidates = [ref for refs in groups.values() for ref in refs]
        raise AmbiguousParent(ticket.id, ticket.parent_id, candidates)

    short, refs = next(iter(groups.items()))
    # The local branch carries work not pushed yet
    return (short if short in refs else refs[0]), BaseKind.PARENT


def parent_maintenance_rule(ticket: Ticket, known_refs: frozenset, settings: ResolverSettings) -> Optional[tuple[str, BaseKind]]:
    """Branch from the parent's maintenance branch."""
    if ticket.parent_id is None or not ticket.parent_target_label:
        return None
    ref = _lookup_label(ticket.parent_target_label, known_refs, settings)
    return (ref, BaseKind.MAINTENANCE) if ref else None


def maintenance_rule(ticket: Ticket, known_refs: frozenset, settings: ResolverSettings) -> Optional[tuple[str, BaseKind]]:
    """Branch from the maintenance branch of the target version."""
    if not ticket.target_label:
        return None
    ref = _lookup_label(ticket.target_label, known_refs, settings)
    if ref is None:
        logger.info(f"No maintenance branch '{ticket.target_label}'")
        return None
    return ref, BaseKind.MAINTENANCE


def default_rule(ticket: Ticket, known_refs: frozenset, settings: ResolverSettings) -> Optional[tuple[str, BaseKind]]:
    """Branch from the default integration reference."""
    if settings.default_ref not in known_refs:
        raise NoDefaultRef(ticket.id, settings.default_ref)
    return settings.default_ref, BaseKind.DEFAULT


RULES: tuple[Rule, ...] = (parent_rule, maintenance_rule, default_rule)

PARENT_LABEL_RULES: tuple[Rule, ...] = (
    parent_rule,
    parent_maintenance_rule,
    maintenance_rule,
    default_rule,
)


def rules_for(policy: str) -> tuple[Rule, ...]:
    """Get the ordered rule list of a parent fallback policy."""
    if policy == PARENT_FALLBACK_PARENT_LABEL:
        return PARENT_LABEL_RULES
    if policy == PARENT_FALLBACK_OWN_LABEL:
        return RULES
    raise ValueError(f"Unknown parent fallback policy: {policy!r}")


def resolve(
    ticket: Ticket,
    known_refs: Iterable[str],
    settings: Optional[ResolverSettings] = None,
) -> ResolutionResult:
    """
    Decide the base reference and the name of a ticket's new branch.

    Args:
        ticket: Ticket to create a branch for.
        known_refs: Local and remote-tracking branch names.
        settings: Default reference, remote and naming scheme.

    Returns:
        ResolutionResult with the base reference and new branch name.

    Raises:
        AmbiguousParent: If the parent ticket matches several branches.
        NoDefaultRef: If the default reference is needed but missing.
        BranchExists: If the ticket already has a branch.
        NamingError: If no branch name can be derived from the ticket.
    """
    if settings is None:
        settings = ResolverSettings()
    refs = frozenset(known_refs)

    new_branch = derive_branch_name(ticket, settings.naming)
    existing = [ref for group in _ticket_branches(ticket.id, refs, settings).values() for ref in group]
    if existing:
        raise BranchExists(ticket.id, new_branch, existing)

    for rule in rules_for(settings.parent_fallback):
        decision = rule(ticket, refs, settings)
        if decision is not None:
            base_ref, kind = decision
            logger.debug(f"Rule {rule.__name__} chose {base_ref}")
            return ResolutionResult(base_ref=base_ref, new_branch=new_branch, kind=kind)

    # default_rule either matches or raises
    raise NoDefaultRef(ticket.id, settings.default_ref)
