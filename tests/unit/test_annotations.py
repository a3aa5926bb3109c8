"""Tests for annotations and feature flags."""

from __future__ import annotations

import pytest

from formwork.core import (
    FLAGS,
    AnnotationMessage,
    Annotations,
    App,
    Construct,
    FeatureFlags,
    MessageLevel,
    ValidationError,
    recommended_flags,
)
from formwork.core.annotations import collect_messages
from formwork.core.feature_flags import IAM_MINIMIZE_POLICIES


class TestAnnotations:
    """Info, warning and error messages on constructs."""

    def test_levels(self) -> None:
        app = App()
        thing = Construct(app, "Thing")
        Annotations.of(thing).add_info("fyi")
        Annotations.of(thing).add_warning("hmm")
        Annotations.of(thing).add_error("no")
        assert collect_messages(app) == [
            AnnotationMessage(MessageLevel.INFO, "Thing", "fyi"),
            AnnotationMessage(MessageLevel.WARNING, "Thing", "hmm"),
            AnnotationMessage(MessageLevel.ERROR, "Thing", "no"),
        ]

    def test_duplicates_dropped(self) -> None:
        app = App()
        Annotations.of(app).add_warning("same")
        Annotations.of(app).add_warning("same")
        assert len(collect_messages(app)) == 1

    def test_format(self) -> None:
        assert AnnotationMessage(MessageLevel.ERROR, "", "boom").format() == "[error] <root>: boom"
        assert AnnotationMessage(MessageLevel.INFO, "A/B", "hi").format() == "[info] A/B: hi"

    def test_acknowledged_warning_suppressed(self) -> None:
        """Acknowledging on a parent suppresses later warnings below it."""
        app = App()
        parent = Construct(app, "Parent")
        child = Construct(parent, "Child")
        Annotations.of(parent).acknowledge_warning("my-lib:noisy", "known")
        Annotations.of(child).add_warning_v2("my-lib:noisy", "noisy warning")
        assert collect_messages(app) == []

    def test_acknowledge_removes_existing_warning(self) -> None:
        app = App()
        child = Construct(Construct(app, "Parent"), "Child")
        Annotations.of(child).add_warning_v2("my-lib:noisy", "noisy warning")
        Annotations.of(child).add_warning_v2("my-lib:other", "other warning")
        Annotations.of(app).acknowledge_warning("my-lib:noisy")
        messages = collect_messages(app)
        assert [m.message for m in messages] == ["other warning [ack: my-lib:other]"]

    def test_deprecation(self) -> None:
        app = App()
        Annotations.of(app).add_deprecation("Old.api", "use New.api")
        (message,) = collect_messages(app)
        assert message.level == MessageLevel.WARNING
        assert "Old.api is deprecated" in message.message

    def test_deprecations_as_errors(self) -> None:
        app = App(context={"formwork:deprecationsAsErrors": True})
        Annotations.of(app).add_deprecation("Old.api", "use New.api")
        assert collect_messages(app)[0].level == MessageLevel.ERROR

    @pytest.mark.parametrize(
        ("value", "level"),
        [("false", MessageLevel.WARNING), ("TRUE", MessageLevel.ERROR)],
    )
    def test_deprecations_as_errors_from_string(self, value: str, level: MessageLevel) -> None:
        app = App(context={"formwork:deprecationsAsErrors": value})
        Annotations.of(app).add_deprecation("Old.api", "use New.api")
        assert collect_messages(app)[0].level == level


class TestFeatureFlags:
    """Flag lookup through context."""

    def test_defaults_are_off(self) -> None:
        app = App()
        assert all(not FeatureFlags.of(app).is_enabled(name) for name in FLAGS)

    def test_enabled_through_context(self) -> None:
        app = App(context={IAM_MINIMIZE_POLICIES: True})
        child = Construct(app, "Child")
        assert FeatureFlags.of(child).is_enabled(IAM_MINIMIZE_POLICIES)

    def test_string_booleans_accepted(self) -> None:
        app = App(context={IAM_MINIMIZE_POLICIES: "true"})
        assert FeatureFlags.of(app).is_enabled(IAM_MINIMIZE_POLICIES)

    def test_non_boolean_rejected(self) -> None:
        app = App(context={IAM_MINIMIZE_POLICIES: "yes"})
        with pytest.raises(ValidationError, match="must be a boolean"):
            FeatureFlags.of(app).is_enabled(IAM_MINIMIZE_POLICIES)

    def test_unknown_flag(self) -> None:
        with pytest.raises(ValidationError, match="Unknown feature flag"):
            FeatureFlags.of(App()).is_enabled("@formwork/core:nope")

    def test_recommended_flags(self) -> None:
        recommended = recommended_flags()
        assert set(recommended) == set(FLAGS)
        assert recommended[IAM_MINIMIZE_POLICIES] is True
