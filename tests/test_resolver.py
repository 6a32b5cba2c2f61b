"""
Unit tests for base reference resolution.

Tests cover:
- The parent / maintenance / default rule order
- Ambiguous parent and missing default failures
- Existing ticket branches
- The parent_label fallback policy
"""

import pytest

from ticket_branch.config import AppConfig, GitConfig, NamingConfig, ResolutionConfig
from ticket_branch.models import BaseKind, Ticket
from ticket_branch.naming import NamingError
from ticket_branch.resolver import (
    AmbiguousParent,
    BranchExists,
    NoDefaultRef,
    PARENT_LABEL_RULES,
    RULES,
    ResolutionError,
    ResolverSettings,
    default_rule,
    maintenance_rule,
    parent_rule,
    resolve,
    rules_for,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings() -> ResolverSettings:
    """Default settings: ``{id}`` branches, origin/master as default."""
    return ResolverSettings(
        default_ref="origin/master",
        remote="origin",
        naming=NamingConfig(branch_template="{id}"),
    )


@pytest.fixture
def team_settings() -> ResolverSettings:
    """Settings using a prefixed naming scheme."""
    return ResolverSettings(
        default_ref="origin/master",
        remote="origin",
        naming=NamingConfig(branch_template="rd-{id}-{slug}"),
    )


# =============================================================================
# Scenarios
# =============================================================================

class TestScenarios:
    """Reference scenarios for the rule order."""

    def test_no_parent_no_label_uses_default(self, settings):
        ticket = Ticket(id=501)
        result = resolve(ticket, {"origin/master"}, settings)
        assert result.base_ref == "origin/master"
        assert result.new_branch == "501"
        assert result.kind == BaseKind.DEFAULT

    def test_parent_branch_is_used(self, settings):
        ticket = Ticket(id=502, parent_id=501)
        result = resolve(ticket, {"origin/master", "501"}, settings)
        assert result.base_ref == "501"
        assert result.new_branch == "502"
        assert result.kind == BaseKind.PARENT

    def test_maintenance_branch_is_used(self, settings):
        ticket = Ticket(id=503, target_label="release-2.3")
        result = resolve(ticket, {"origin/master", "release-2.3"}, settings)
        assert result.base_ref == "release-2.3"
        assert result.kind == BaseKind.MAINTENANCE

    def test_missing_parent_branch_falls_through(self, settings):
        ticket = Ticket(id=504, parent_id=999)
        result = resolve(ticket, {"origin/master"}, settings)
        assert result.base_ref == "origin/master"
        assert result.kind == BaseKind.DEFAULT

    def test_missing_label_and_default_fails(self, settings):
        ticket = Ticket(id=505, target_label="release-x")
        with pytest.raises(NoDefaultRef) as exc_info:
            resolve(ticket, {"release-y"}, settings)
        assert exc_info.value.default_ref == "origin/master"
        assert "#505" in str(exc_info.value)
        assert "origin/master" in str(exc_info.value)


# =============================================================================
# Rule order
# =============================================================================

class TestRuleOrder:
    """Tests for the priority between rules."""

    def test_parent_wins_over_label(self, settings):
        ticket = Ticket(id=502, parent_id=501, target_label="release-2.3")
        result = resolve(ticket, {"origin/master", "501", "release-2.3"}, settings)
        assert result.base_ref == "501"

    def test_label_used_when_parent_has_no_branch(self, settings):
        ticket = Ticket(id=502, parent_id=501, target_label="release-2.3")
        result = resolve(ticket, {"origin/master", "release-2.3"}, settings)
        assert result.base_ref == "release-2.3"

    def test_unknown_label_falls_back_to_default(self, settings):
        ticket = Ticket(id=503, target_label="release-9.9")
        result = resolve(ticket, {"origin/master", "release-2.3"}, settings)
        assert result.base_ref == "origin/master"

    def test_parent_found_without_default(self, settings):
        """Default reference is only required when it is chosen."""
        ticket = Ticket(id=502, parent_id=501)
        assert resolve(ticket, {"501"}, settings).base_ref == "501"

    def test_rule_lists(self):
        assert RULES == (parent_rule, maintenance_rule, default_rule)
        assert rules_for("own_label") is RULES
        assert rules_for("parent_label") is PARENT_LABEL_RULES
        with pytest.raises(ValueError):
            rules_for("unknown")

    def test_accepts_any_iterable(self, settings):
        result = resolve(Ticket(id=501), ["origin/master", "origin/master"], settings)
        assert result.base_ref == "origin/master"


# =============================================================================
# Reference lookup
# =============================================================================

class TestReferenceLookup:
    """Tests for how references are matched."""

    def test_remote_parent_branch(self, settings):
        ticket = Ticket(id=502, parent_id=501)
        result = resolve(ticket, {"origin/master", "origin/501"}, settings)
        assert result.base_ref == "origin/501"

    def test_local_parent_preferred_over_tracking_copy(self, settings):
        ticket = Ticket(id=502, parent_id=501)
        result = resolve(ticket, {"origin/master", "origin/501", "501"}, settings)
        assert result.base_ref == "501"

    def test_parent_with_prefixed_names(self, team_settings):
        ticket = Ticket(id=502, parent_id=501, subject="Child task")
        refs = {"origin/master", "origin/rd-501-parent-work", "origin/rd-5010-other"}
        result = resolve(ticket, refs, team_settings)
        assert result.base_ref == "origin/rd-501-parent-work"
        assert result.new_branch == "rd-502-child-task"

    def test_remote_maintenance_preferred(self, settings):
        ticket = Ticket(id=503, target_label="release-2.3")
        result = resolve(ticket, {"origin/master", "origin/release-2.3", "release-2.3"}, settings)
        assert result.base_ref == "origin/release-2.3"

    def test_maintenance_on_remote_only(self, settings):
        ticket = Ticket(id=503, target_label="release-2.3")
        result = resolve(ticket, {"origin/master", "origin/release-2.3"}, settings)
        assert result.base_ref == "origin/release-2.3"

    def test_branch_starting_with_parent_id_is_not_parent(self, settings):
        ticket = Ticket(id=504, parent_id=3)
        result = resolve(ticket, {"origin/master", "3rd-party-sync"}, settings)
        assert result.base_ref == "origin/master"
        assert result.kind == BaseKind.DEFAULT

    def test_branch_starting_with_ticket_id_is_not_existing_branch(self, settings):
        result = resolve(Ticket(id=2), {"origin/master", "origin/2fa-login"}, settings)
        assert result.base_ref == "origin/master"
        assert result.new_branch == "2"

    def test_prefixed_parent_needs_separator(self, team_settings):
        ticket = Ticket(id=504, parent_id=3)
        result = resolve(ticket, {"origin/master", "rd-3rd-party-sync"}, team_settings)
        assert result.base_ref == "origin/master"

    def test_other_remote(self):
        settings = ResolverSettings(default_ref="upstream/main", remote="upstream")
        ticket = Ticket(id=503, target_label="release-2.3")
        result = resolve(ticket, {"upstream/main", "upstream/release-2.3"}, settings)
        assert result.base_ref == "upstream/release-2.3"


# =============================================================================
# Failures
# =============================================================================

class TestFailures:
    """Tests for resolution errors."""

    def test_ambiguous_parent(self, team_settings):
        ticket = Ticket(id=502, parent_id=501)
        refs = {"origin/master", "rd-501-first", "origin/rd-501-second"}
        with pytest.raises(AmbiguousParent) as exc_info:
            resolve(ticket, refs, team_settings)
        error = exc_info.value
        assert error.parent_id == 501
        assert sorted(error.candidates) == ["origin/rd-501-second", "rd-501-first"]
        assert "#502" in str(error)

    def test_ambiguous_parent_is_not_hidden_by_label(self, team_settings):
        ticket = Ticket(id=502, parent_id=501, target_label="release-2.3")
        refs = {"origin/master", "release-2.3", "rd-501-a", "rd-501-b"}
        with pytest.raises(AmbiguousParent):
            resolve(ticket, refs, team_settings)

    def test_no_default_ref(self, settings):
        with pytest.raises(NoDefaultRef):
            resolve(Ticket(id=501), set(), settings)

    def test_errors_share_base_class(self, settings):
        with pytest.raises(ResolutionError):
            resolve(Ticket(id=501), set(), settings)

    def test_branch_already_exists(self, settings):
        with pytest.raises(BranchExists) as exc_info:
            resolve(Ticket(id=501), {"origin/master", "origin/501"}, settings)
        assert exc_info.value.existing == ["origin/501"]
        assert exc_info.value.new_branch == "501"

    def test_ticket_branch_with_other_slug_exists(self, team_settings):
        ticket = Ticket(id=501, subject="New title")
        with pytest.raises(BranchExists):
            resolve(ticket, {"origin/master", "rd-501-old-title"}, team_settings)

    def test_naming_error_propagates(self):
        settings = ResolverSettings(naming=NamingConfig(branch_template="{id}-{trigram}"))
        with pytest.raises(NamingError):
            resolve(Ticket(id=501), {"origin/master"}, settings)


# =============================================================================
# Parent fallback policy
# =============================================================================

class TestParentLabelPolicy:
    """Tests for the parent_label fallback policy."""

    @pytest.fixture
    def policy_settings(self) -> ResolverSettings:
        return ResolverSettings(
            naming=NamingConfig(branch_template="{id}"),
            parent_fallback="parent_label",
        )

    def test_parent_label_used(self, policy_settings):
        ticket = Ticket(
            id=502,
            parent_id=501,
            target_label="release-2.4",
            parent_target_label="release-2.3",
        )
        refs = {"origin/master", "release-2.3", "release-2.4"}
        result = resolve(ticket, refs, policy_settings)
        assert result.base_ref == "release-2.3"
        assert result.kind == BaseKind.MAINTENANCE

    def test_parent_branch_still_first(self, policy_settings):
        ticket = Ticket(id=502, parent_id=501, parent_target_label="release-2.3")
        result = resolve(ticket, {"origin/master", "501", "release-2.3"}, policy_settings)
        assert result.base_ref == "501"

    def test_own_label_when_parent_label_missing(self, policy_settings):
        ticket = Ticket(
            id=502,
            parent_id=501,
            target_label="release-2.4",
            parent_target_label="release-2.3",
        )
        result = resolve(ticket, {"origin/master", "release-2.4"}, policy_settings)
        assert result.base_ref == "release-2.4"

    def test_own_label_policy_ignores_parent_label(self, settings):
        ticket = Ticket(
            id=502,
            parent_id=501,
            target_label="release-2.4",
            parent_target_label="release-2.3",
        )
        result = resolve(ticket, {"origin/master", "release-2.3", "release-2.4"}, settings)
        assert result.base_ref == "release-2.4"


class TestResolverSettings:
    """Tests for building settings from configuration."""

    def test_from_config(self):
        config = AppConfig(
            git=GitConfig(remote="upstream", default_ref="upstream/main"),
            naming=NamingConfig(branch_template="rd-{id}"),
            resolution=ResolutionConfig(parent_fallback="parent_label"),
        )
        settings = ResolverSettings.from_config(config)
        assert settings.default_ref == "upstream/main"
        assert settings.remote == "upstream"
        assert settings.naming.branch_template == "rd-{id}"
        assert settings.parent_fallback == "parent_label"

    def test_short_name(self, settings):
        assert settings.short_name("origin/501") == "501"
        assert settings.short_name("501") == "501"
        assert settings.short_name("feature/501") == "feature/501"
