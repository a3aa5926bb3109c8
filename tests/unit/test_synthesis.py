"""Tests for the synthesis pipeline and the cloud assembly."""

from __future__ import annotations

import json

import pytest
import yaml

from formwork.core import (
    Annotations,
    App,
    AspectPriority,
    Aspects,
    CfnResource,
    Construct,
    Environment,
    FormworkError,
    IAspect,
    MessageLevel,
    Stack,
    SynthesisError,
    ValidationError,
)
from formwork.core.app import CONTEXT_ENV, STRICT_CONTEXT


def _bucket(stack: Stack, id: str = "Bucket") -> CfnResource:
    return CfnResource(stack, id, type="AWS::S3::Bucket")


class TestCrossStackReferences:
    """References between stacks become exports and imports."""

    def test_reference_becomes_import(self, app: App) -> None:
        producer = Stack(app, "Producer")
        bucket = _bucket(producer)
        consumer = Stack(app, "Consumer")
        CfnResource(consumer, "Policy", type="AWS::S3::BucketPolicy", properties={"Bucket": bucket.ref})

        assembly = app.synth()
        produced = assembly.get_stack_by_name("Producer").template
        consumed = assembly.get_stack_by_name("Consumer").template

        (output,) = produced["Outputs"].values()
        export_name = output["Export"]["Name"]
        assert export_name.startswith("Producer:ExportsOutputRefBucket")
        assert output["Value"] == {"Ref": "Bucket"}
        assert consumed["Resources"]["Policy"]["Properties"]["Bucket"] == {
            "Fn::ImportValue": export_name
        }
        assert consumer.dependencies == [producer]
        assert [s.stack_name for s in assembly.stacks] == ["Producer", "Consumer"]

    def test_reference_within_stack_stays_local(self, stack: Stack, synth_template) -> None:
        bucket = _bucket(stack)
        CfnResource(stack, "Policy", type="AWS::S3::BucketPolicy", properties={"Bucket": bucket.ref})
        template = synth_template(stack)
        assert "Outputs" not in template
        assert template["Resources"]["Policy"]["Properties"]["Bucket"] == {"Ref": "Bucket"}

    def test_same_reference_exported_once(self, app: App) -> None:
        """Several consumers of the same attribute share one export."""
        producer = Stack(app, "Producer")
        bucket = _bucket(producer)
        for name in ("One", "Two"):
            consumer = Stack(app, name)
            CfnResource(consumer, "Use", type="AWS::SNS::Topic", properties={"Arn": bucket.get_att("Arn")})
        produced = app.synth().get_stack_by_name("Producer").template
        assert len(produced["Outputs"]) == 1

    def test_cross_environment_reference_rejected(self, app: App) -> None:
        producer = Stack(app, "Producer", env=Environment(account="111111111111", region="us-east-1"))
        bucket = _bucket(producer)
        consumer = Stack(app, "Consumer", env=Environment(account="222222222222", region="us-east-1"))
        CfnResource(consumer, "Use", type="AWS::SNS::Topic", properties={"Bucket": bucket.ref})
        with pytest.raises(ValidationError, match="same environment"):
            app.synth()

    def test_reverse_reference_is_a_cycle(self, app: App) -> None:
        a = Stack(app, "A")
        b = Stack(app, "B")
        in_a = _bucket(a)
        in_b = _bucket(b)
        in_a.cfn_properties["Other"] = in_b.ref
        in_b.cfn_properties["Other"] = in_a.ref
        with pytest.raises(SynthesisError, match="cyclic"):
            app.synth()

    def test_exported_logical_id_is_locked(self, app: App) -> None:
        producer = Stack(app, "Producer")
        bucket = _bucket(producer)
        consumer = Stack(app, "Consumer")
        CfnResource(consumer, "Use", type="AWS::SNS::Topic", properties={"Bucket": bucket.ref})
        app.synth()
        with pytest.raises(SynthesisError, match="locked"):
            bucket.override_logical_id("Renamed")

    def test_construct_dependency_across_stacks(self, app: App) -> None:
        """A node dependency between constructs in different stacks orders the stacks."""
        first = Stack(app, "First")
        second = Stack(app, "Second")
        a = _bucket(first)
        b = _bucket(second)
        a.node.add_dependency(b)
        app.synth()
        assert first.dependencies == [second]


class TestAspects:
    """Aspect invocation."""

    def test_aspect_visits_every_construct(self, stack: Stack) -> None:
        visited: list[str] = []

        class Recorder(IAspect):
            def visit(self, node: Construct) -> None:
                visited.append(node.node.path)

        Construct(Construct(stack, "A"), "B")
        Aspects.of(stack).add(Recorder())
        stack.node.root.synth()
        assert visited == ["TestStack", "TestStack/A", "TestStack/A/B"]

    def test_aspects_reach_constructs_they_create(self, stack: Stack) -> None:
        """Constructs added by an aspect are visited on the next pass."""
        visited: list[str] = []

        class AddOnce(IAspect):
            def visit(self, node: Construct) -> None:
                visited.append(node.node.path)
                if node is stack:
                    Construct(stack, "Added")

        Aspects.of(stack).add(AddOnce())
        stack.node.root.synth()
        assert "TestStack/Added" in visited

    def test_each_aspect_runs_once_per_construct(self, stack: Stack) -> None:
        calls: list[str] = []

        class Counter(IAspect):
            def visit(self, node: Construct) -> None:
                calls.append(node.node.path)

        counter = Counter()
        Aspects.of(stack).add(counter)
        Aspects.of(stack).add(counter)
        app = stack.node.root
        app.synth()
        app.synth(force=True)
        assert calls == ["TestStack"]

    def test_priority_order(self, stack: Stack) -> None:
        order: list[str] = []

        class Named(IAspect):
            def __init__(self, name: str):
                self.name = name

            def visit(self, node: Construct) -> None:
                if node is stack:
                    order.append(self.name)

        Aspects.of(stack).add(Named("readonly"), priority=AspectPriority.READONLY)
        Aspects.of(stack).add(Named("mutating"), priority=AspectPriority.MUTATING)
        Aspects.of(stack.node.root).add(Named("inherited"))
        stack.node.root.synth()
        assert order == ["mutating", "inherited", "readonly"]

    def test_priority_inversion_warns(self, stack: Stack) -> None:
        """An aspect added later with a lower priority than one already run is reported."""
        late = _Noop()

        class AddsLate(IAspect):
            def visit(self, node: Construct) -> None:
                if node is stack:
                    Aspects.of(stack).add(late, priority=AspectPriority.MUTATING)

        Aspects.of(stack).add(AddsLate(), priority=AspectPriority.DEFAULT)
        assembly = stack.node.root.synth()
        assert any("aspectPriorityInversion" in m.message for m in assembly.messages)

    def test_runaway_aspect_detected(self, stack: Stack) -> None:
        class Spawn(IAspect):
            def visit(self, node: Construct) -> None:
                if node is stack:
                    Aspects.of(stack).add(Spawn())

        Aspects.of(stack).add(Spawn())
        with pytest.raises(SynthesisError, match="infinite loop"):
            stack.node.root.synth()


class _Noop(IAspect):
    def visit(self, node: Construct) -> None:
        pass


class TestValidation:
    """Deferred validation during synthesis."""

    def test_errors_collected(self, stack: Stack) -> None:
        Construct(stack, "One").node.add_validation(lambda: ["first problem"])
        Construct(stack, "Two").node.add_validation(lambda: ["second problem"])
        with pytest.raises(ValidationError) as excinfo:
            stack.node.root.synth()
        message = str(excinfo.value)
        assert "Validation failed with the following errors:" in message
        assert "  - [TestStack/One] first problem" in message
        assert "  - [TestStack/Two] second problem" in message

    def test_validation_can_be_skipped(self, stack: Stack) -> None:
        Construct(stack, "One").node.add_validation(lambda: ["problem"])
        stack.node.root.synth(validate_on_synthesis=False)

    def test_tree_unlocked_after_synthesis(self, stack: Stack) -> None:
        stack.node.root.synth()
        Construct(stack, "AfterSynth")


class TestAnnotationsInAssembly:
    """Annotations collected by synthesis."""

    def test_messages_collected(self, stack: Stack) -> None:
        thing = Construct(stack, "Thing")
        Annotations.of(thing).add_warning("careful")
        Annotations.of(thing).add_error("broken")
        assembly = stack.node.root.synth()
        levels = {(m.level, m.message) for m in assembly.messages}
        assert (MessageLevel.WARNING, "careful") in levels
        assert (MessageLevel.ERROR, "broken") in levels
        assert assembly.has_errors
        artifact = assembly.get_stack_artifact("TestStack")
        assert {m.path for m in artifact.messages} == {"TestStack/Thing"}

    def test_strict_mode_fails_on_warnings(self) -> None:
        app = App(context={STRICT_CONTEXT: True})
        stack = Stack(app, "Strict")
        Annotations.of(stack).add_warning("careful")
        with pytest.raises(SynthesisError, match="strict mode"):
            app.synth()

    @pytest.mark.parametrize("value", ["false", "False", False])
    def test_strict_mode_off_when_false(self, value: object) -> None:
        """A "false" string from the command line does not turn strict mode on."""
        app = App(context={STRICT_CONTEXT: value})
        stack = Stack(app, "Relaxed")
        Annotations.of(stack).add_warning("careful")
        assert not app.synth().has_errors

    def test_strict_mode_rejects_non_boolean(self) -> None:
        app = App(context={STRICT_CONTEXT: "sometimes"})
        Stack(app, "Odd")
        with pytest.raises(ValidationError, match="must be a boolean"):
            app.synth()

    def test_manifest_includes_messages(self, stack: Stack) -> None:
        Annotations.of(stack).add_info("hello")
        manifest = stack.node.root.synth().manifest()
        assert manifest["artifacts"]["TestStack"]["metadata"] == {
            "/TestStack": [{"type": "formwork:info", "data": "hello"}]
        }


class TestCloudAssembly:
    """Assembly contents and output."""

    def test_synth_is_cached(self, app: App) -> None:
        Stack(app, "S")
        first = app.synth()
        assert app.synth() is first
        assert app.synth(force=True) is not first

    def test_lookup(self, app: App) -> None:
        Stack(app, "S", stack_name="deployed-name")
        assembly = app.synth()
        assert assembly.get_stack_by_name("deployed-name").artifact_id == "S"
        assert assembly.get_stack_artifact("S").stack_name == "deployed-name"
        with pytest.raises(FormworkError):
            assembly.get_stack_by_name("missing")
        with pytest.raises(FormworkError):
            assembly.get_stack_artifact("missing")

    def test_duplicate_stack_names_rejected(self, app: App) -> None:
        Stack(app, "A", stack_name="same")
        Stack(app, "B", stack_name="same")
        with pytest.raises(SynthesisError, match="share the stack name"):
            app.synth()

    def test_find_resources(self, stack: Stack) -> None:
        _bucket(stack)
        CfnResource(stack, "Topic", type="AWS::SNS::Topic")
        artifact = stack.node.root.synth().get_stack_artifact("TestStack")
        assert list(artifact.find_resources("AWS::SNS::Topic")) == ["Topic"]

    def test_manifest(self, app: App) -> None:
        a = Stack(app, "A", tags={"team": "core"}, termination_protection=True)
        b = Stack(app, "B")
        b.add_dependency(a)
        manifest = app.synth().manifest()
        assert manifest["version"] == "1.0.0"
        artifact_a = manifest["artifacts"]["A"]
        assert artifact_a["type"] == "aws:cloudformation:stack"
        assert artifact_a["environment"] == "aws://unknown-account/unknown-region"
        assert artifact_a["properties"] == {
            "templateFile": "A.template.json",
            "stackName": "A",
            "terminationProtection": True,
            "tags": {"team": "core"},
        }
        assert manifest["artifacts"]["B"]["dependencies"] == ["A"]
        assert manifest["artifacts"]["Tree"]["properties"] == {"file": "tree.json"}

    def test_tree(self, stack: Stack) -> None:
        _bucket(stack)
        tree = stack.node.root.synth().tree
        bucket = tree["tree"]["children"]["TestStack"]["children"]["Bucket"]
        assert bucket["path"] == "TestStack/Bucket"
        assert bucket["attributes"] == {"formwork:cloudformation:type": "AWS::S3::Bucket"}

    def test_tree_metadata_can_be_disabled(self) -> None:
        app = App(tree_metadata=False)
        Stack(app, "S")
        assert "Tree" not in app.synth().manifest()["artifacts"]

    def test_write_json(self, tmp_path) -> None:
        app = App(outdir=str(tmp_path))
        stack = Stack(app, "S")
        _bucket(stack)
        app.synth()
        text = (tmp_path / "S.template.json").read_text()
        assert text.startswith('{\n "Resources"')
        assert json.loads(text)["Resources"]["Bucket"]["Type"] == "AWS::S3::Bucket"
        assert json.loads((tmp_path / "manifest.json").read_text())["artifacts"]["S"]
        assert (tmp_path / "tree.json").exists()

    def test_write_yaml(self, tmp_path) -> None:
        app = App(outdir=str(tmp_path), template_format="yaml")
        stack = Stack(app, "S")
        _bucket(stack)
        app.synth()
        template = yaml.safe_load((tmp_path / "S.template.yaml").read_text())
        assert template["Resources"]["Bucket"]["Type"] == "AWS::S3::Bucket"
        manifest = json.loads((tmp_path / "manifest.json").read_text())
        assert manifest["artifacts"]["S"]["properties"]["templateFile"] == "S.template.yaml"

    def test_unknown_template_format(self, app: App, tmp_path) -> None:
        Stack(app, "S")
        with pytest.raises(FormworkError, match="Unknown template format"):
            app.synth().write(tmp_path, "xml")


class TestAppContext:
    """Context supplied through the environment."""

    def test_context_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(CONTEXT_ENV, json.dumps({"key": "from-env", "other": 1}))
        app = App(context={"key": "from-code"}, post_cli_context={"other": 2})
        assert app.node.try_get_context("key") == "from-env"
        assert app.node.try_get_context("other") == 2

    def test_invalid_environment_context(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(CONTEXT_ENV, "{not json")
        with pytest.raises(FormworkError, match="not valid JSON"):
            App()
        monkeypatch.setenv(CONTEXT_ENV, "[1, 2]")
        with pytest.raises(FormworkError, match="JSON object"):
            App()
