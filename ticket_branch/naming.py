"""
Branch naming for ticket-branch.

All functions are pure: the same ticket and template always give the
same branch name.
"""

import re
import unicodedata
from string import Formatter
from typing import Optional

from .config import NamingConfig
from .models import Ticket


_MULTIPLE_DASH_RE = re.compile(r"-+")
_FORBIDDEN_SUBJECT_CHARS_RE = re.compile(r"[\[\]\"'()]")
# Anything left that git would reject or that reads badly in a branch name
_UNSAFE_SLUG_CHARS_RE = re.compile(r"[^a-z0-9._=-]")

_REF_FORBIDDEN_CHARS = set(" ~^:?*[\\")


class NamingError(ValueError):
    """A branch name cannot be derived from the ticket."""

    kind = "NamingError"


class InvalidBranchName(NamingError):
    """The derived name is not a valid git branch name."""

    kind = "InvalidBranchName"


def remove_diacritics(text: str) -> str:
    """Replace accented letters by their base letter ("é" -> "e")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def cleanup_subject(subject: str) -> str:
    """
    Normalize a ticket subject for use in a branch name.

    Spaces become dashes, ``:`` becomes ``=``, text is lowercased, runs of
    dashes are collapsed and brackets, quotes and parentheses are dropped.

    Examples:
        >>> cleanup_subject(' [Do] the - "laundry" ')
        'do-the-laundry'
        >>> cleanup_subject("-----")
        '-'
    """
    subject = subject.strip().replace(" ", "-").replace(":", "=").lower()
    subject = _MULTIPLE_DASH_RE.sub("-", subject)
    subject = _FORBIDDEN_SUBJECT_CHARS_RE.sub("", subject)
    return remove_diacritics(subject)


def slugify(subject: str, max_length: int = 50) -> str:
    """
    Turn a subject into a branch-name-safe slug.

    Returns an empty string when nothing usable is left.
    """
    slug = _UNSAFE_SLUG_CHARS_RE.sub("", cleanup_subject(subject))
    slug = _MULTIPLE_DASH_RE.sub("-", slug)
    # ".." is not allowed in a ref
    slug = re.sub(r"\.{2,}", ".", slug)
    slug = slug.strip("-.")[:max_length]
    return slug.rstrip("-.")


def trigram(assignee: Optional[str]) -> str:
    """
    Build the three-letter initials of an assignee.

    First letter of the first name plus the first two letters of the
    second name: ``"Arnold Bcon Tran"`` gives ``"abc"``.

    Raises:
        NamingError: If the name has fewer than two words.
    """
    words = (assignee or "").split()
    if len(words) < 2:
        raise NamingError(f"Unable to read trigram from assignee {assignee!r}")
    return remove_diacritics(f"{words[0][:1]}{words[1][:2]}").lower()


def check_branch_name(name: str) -> str:
    """
    Check a branch name against git's reference naming rules.

    Returns:
        The name unchanged.

    Raises:
        InvalidBranchName: If git would refuse the name.
    """
    problem = None
    if not name:
        problem = "name is empty"
    elif name.startswith("-"):
        problem = "name starts with '-'"
    elif name == "@":
        problem = "name is '@'"
    elif any(ord(c) < 32 or ord(c) == 127 for c in name):
        problem = "name contains control characters"
    elif _REF_FORBIDDEN_CHARS & set(name):
        problem = "name contains one of ' ~^:?*[\\'"
    elif ".." in name or "@{" in name:
        problem = "name contains '..' or '@{'"
    elif name.endswith(("/", ".", ".lock")):
        problem = "name ends with '/', '.' or '.lock'"
    elif any(not part or part.startswith(".") for part in name.split("/")):
        problem = "name has an empty component or one starting with '.'"

    if problem:
        raise InvalidBranchName(f"Invalid branch name {name!r}: {problem}")
    return name


def derive_branch_name(ticket: Ticket, naming: NamingConfig) -> str:
    """
    Render the branch name of a ticket.

    Only the fields used by the template are computed, so a ticket
    without assignee is fine as long as the template has no ``{trigram}``.

    Args:
        ticket: Ticket to name.
        naming: Naming configuration holding the template.

    Returns:
        A valid git branch name.

    Raises:
        NamingError: If a required field is missing or the result is invalid.
    """
    used = {name for _, name, _, _ in Formatter().parse(naming.branch_template) if name}

    values: dict[str, object] = {"id": ticket.id}
    if "slug" in used:
        values["slug"] = slugify(ticket.subject, naming.slug_max_length)
    if "trigram" in used:
        values["trigram"] = trigram(ticket.assignee)
    if "version" in used:
        if not ticket.version:
            raise NamingError(f"Ticket #{ticket.id} has no target version")
        values["version"] = ticket.version

    try:
        name = naming.branch_template.format(**values)
    except (KeyError, IndexError, ValueError) as e:
        raise NamingError(f"Cannot render branch template {naming.branch_template!r}: {e}") from e

    # An empty slug leaves dangling separators
    name = _MULTIPLE_DASH_RE.sub("-", name).strip("-")
    return check_branch_name(name)


def branch_stem(ticket_id: int, naming: NamingConfig) -> str:
    """Leading part shared by every branch of a ticket, e.g. ``rd-501``."""
    return f"{naming.id_prefix}{ticket_id}"


def id_separator(naming: NamingConfig) -> Optional[str]:
    """
    Literal text following ``{id}`` in the branch template.

    ``None`` when ``{id}`` ends the template, ``""`` when another field
    follows it directly.
    """
    parsed = list(Formatter().parse(naming.branch_template))
    for index, (_, name, _, _) in enumerate(parsed):
        if name == "id":
            if index + 1 == len(parsed):
                return None
            return parsed[index + 1][0]
    return None


def matches_ticket(short_name: str, ticket_id: int, naming: NamingConfig) -> bool:
    """
    Tell whether a branch short name belongs to a ticket.

    With ``rd-{id}-{slug}``, ``rd-501`` and ``rd-501-fix-login`` belong
    to ticket 501 while ``rd-5012`` does not. With ``{id}`` only the
    exact name ``501`` does.
    """
    stem = branch_stem(ticket_id, naming)
    separator = id_separator(naming)
    if separator is None:
        return short_name == stem
    if short_name == stem:
        # Trailing fields rendered empty
        return True
    if separator:
        return short_name.startswith(stem + separator)

    rest = short_name[len(stem):] if short_name.startswith(stem) else ""
    return bool(rest) and not rest[0].isdigit()
