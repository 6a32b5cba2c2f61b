"""
Data models for ticket-branch.

Uses Pydantic for validation of the tracker payload and for the
immutable values handed to the resolver.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class IdProperty(BaseModel):
    """Reference to another tracker object by id."""

    id: int


class NamedProperty(BaseModel):
    """Tracker object reference carrying a display name."""

    id: int
    name: str = ""


class Issue(BaseModel):
    """
    Issue as returned by the tracker JSON API.

    Only the attributes used for branch creation are declared; anything
    else in the payload is ignored.
    """

    id: int = Field(..., gt=0, description="Ticket number")
    subject: str = Field(default="", description="Ticket title")
    fixed_version: Optional[NamedProperty] = Field(
        default=None,
        description="Target version the ticket is scheduled for",
    )
    assigned_to: Optional[NamedProperty] = None
    parent: Optional[IdProperty] = None


class IssueEnvelope(BaseModel):
    """Top-level document of ``/issues/<id>.json``."""

    issue: Issue


def target_version(name: str) -> Optional[str]:
    """
    Reduce a version name to its ``major.minor`` part.

    ``"8.1.0"`` becomes ``"8.1"``; a name without a dot is kept as is.
    """
    name = name.strip()
    if not name:
        return None
    parts = name.split(".")
    return ".".join(parts[:2])


class Ticket(BaseModel):
    """
    Ticket data needed to pick a base reference and name a branch.

    Attributes:
        id: Ticket number
        subject: Ticket title, used for the optional slug
        target_label: Maintenance branch label the ticket is scheduled against
        parent_id: Id of the parent ticket when this one is a sub-task
        version: ``major.minor`` of the target version
        assignee: Display name of the assignee
        parent_target_label: Maintenance label of the parent ticket, if fetched
    """

    id: int = Field(..., gt=0)
    subject: str = ""
    target_label: Optional[str] = None
    parent_id: Optional[int] = Field(default=None, gt=0)
    version: Optional[str] = None
    assignee: Optional[str] = None
    parent_target_label: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("target_label", "parent_target_label")
    @classmethod
    def blank_label_is_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty labels as absent."""
        if v is not None:
            v = v.strip()
        return v or None

    @classmethod
    def from_issue(cls, issue: Issue, maintenance_template: str = "release-{version}") -> "Ticket":
        """
        Build a Ticket from the tracker payload.

        Args:
            issue: Parsed tracker issue.
            maintenance_template: Template turning the target version into
                a maintenance branch label.

        Returns:
            Ticket instance.
        """
        version = None
        if issue.fixed_version is not None:
            version = target_version(issue.fixed_version.name)

        target_label = None
        if version:
            target_label = maintenance_template.format(version=version)

        return cls(
            id=issue.id,
            subject=issue.subject,
            target_label=target_label,
            parent_id=issue.parent.id if issue.parent else None,
            version=version,
            assignee=issue.assigned_to.name if issue.assigned_to else None,
        )

    def with_parent_label(self, label: Optional[str]) -> "Ticket":
        """Return a copy carrying the parent's maintenance label."""
        # model_copy skips validation
        label = (label or "").strip() or None
        return self.model_copy(update={"parent_target_label": label})


class BaseKind(str, Enum):
    """Which rule chose the base reference."""

    PARENT = "parent"
    MAINTENANCE = "maintenance"
    DEFAULT = "default"


class ResolutionResult(BaseModel):
    """Base reference and name of the branch to create."""

    base_ref: str
    new_branch: str
    kind: BaseKind

    model_config = {"frozen": True}

    def describe(self) -> str:
        """Human readable summary."""
        return f"{self.new_branch} from {self.base_ref} ({self.kind.value} branch)"
