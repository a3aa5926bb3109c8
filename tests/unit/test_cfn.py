"""Tests for template elements: resources, outputs, parameters, conditions and mappings."""

from __future__ import annotations

import pytest

from formwork.core import (
    App,
    CfnCondition,
    CfnMapping,
    CfnOutput,
    CfnParameter,
    CfnResource,
    Construct,
    Fn,
    RemovalPolicy,
    Stack,
    SynthesisError,
    Token,
    ValidationError,
)
from formwork.core.feature_flags import VALIDATE_SNAPSHOT_REMOVAL_POLICY


class TestCfnResource:
    """Rendering of resources."""

    def test_basic_rendering(self, stack: Stack, synth_template) -> None:
        """Properties, type and path metadata are rendered under the logical id."""
        CfnResource(stack, "Bucket", type="AWS::S3::Bucket", properties={"BucketName": "b"})
        template = synth_template(stack)
        assert template["Resources"]["Bucket"] == {
            "Type": "AWS::S3::Bucket",
            "Properties": {"BucketName": "b"},
            "Metadata": {"formwork:path": "TestStack/Bucket"},
        }

    def test_path_metadata_can_be_disabled(self, synth_template) -> None:
        """Without path metadata, empty sections are omitted."""
        stack = Stack(App(context={"formwork:pathMetadata": False}), "Stack")
        CfnResource(stack, "Topic", type="AWS::SNS::Topic")
        assert synth_template(stack)["Resources"]["Topic"] == {"Type": "AWS::SNS::Topic"}

    def test_type_required(self, stack: Stack) -> None:
        with pytest.raises(ValidationError, match="type"):
            CfnResource(stack, "Thing", type="")

    def test_nested_logical_id_has_hash(self, stack: Stack) -> None:
        """Nested resources get a human part and an 8-character hash."""
        parent = Construct(stack, "Queue")
        resource = CfnResource(parent, "Resource", type="AWS::SQS::Queue")
        logical_id = stack.resolve(resource.logical_id)
        assert logical_id.startswith("Queue")
        assert len(logical_id) == len("Queue") + 8

    def test_ref_and_get_att(self, stack: Stack) -> None:
        resource = CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
        assert stack.resolve(resource.ref) == {"Ref": "Bucket"}
        assert stack.resolve(resource.get_att("Arn")) == {"Fn::GetAtt": ["Bucket", "Arn"]}
        assert resource.get_att("Arn") == resource.get_att("Arn")

    def test_override_logical_id(self, stack: Stack, synth_template) -> None:
        """Overridden ids are used by references too."""
        bucket = CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
        bucket.override_logical_id("MyBucket")
        CfnResource(stack, "Policy", type="AWS::S3::BucketPolicy", properties={"Bucket": bucket.ref})
        template = synth_template(stack)
        assert "MyBucket" in template["Resources"]
        assert template["Resources"]["Policy"]["Properties"]["Bucket"] == {"Ref": "MyBucket"}

    def test_invalid_logical_id_override(self, stack: Stack) -> None:
        resource = CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
        with pytest.raises(ValidationError, match="Invalid logical id"):
            resource.override_logical_id("1-bad")

    def test_rename_logical_id(self, stack: Stack, synth_template) -> None:
        """Stack-level renames apply to generated ids."""
        CfnResource(stack, "Old", type="AWS::S3::Bucket")
        stack.rename_logical_id("Old", "New")
        assert list(synth_template(stack)["Resources"]) == ["New"]

    def test_unused_rename_fails_validation(self, stack: Stack, synth_template) -> None:
        CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
        stack.rename_logical_id("Missing", "Other")
        with pytest.raises(ValidationError, match="Missing"):
            synth_template(stack)

    def test_duplicate_logical_id_rejected(self, stack: Stack, synth_template) -> None:
        CfnResource(stack, "A", type="AWS::S3::Bucket").override_logical_id("Same")
        CfnResource(stack, "B", type="AWS::S3::Bucket").override_logical_id("Same")
        with pytest.raises(SynthesisError, match="already contains 'Same'"):
            synth_template(stack)


class TestOverrides:
    """Raw overrides on rendered resources."""

    def test_property_override_and_deletion(self, stack: Stack, synth_template) -> None:
        resource = CfnResource(
            stack, "Bucket", type="AWS::S3::Bucket", properties={"Keep": 1, "Drop": 2}
        )
        resource.add_property_override("Nested.Deep", "x")
        resource.add_property_deletion_override("Drop")
        resource.add_override("Metadata", {"Custom": True})
        resource.add_deletion_override("Metadata.formwork:path")
        body = synth_template(stack)["Resources"]["Bucket"]
        assert body["Properties"] == {"Keep": 1, "Nested": {"Deep": "x"}}
        assert body["Metadata"] == {"Custom": True}

    def test_escaped_dot_in_override_path(self, stack: Stack, synth_template) -> None:
        resource = CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
        resource.add_property_override("Tags\\.Name", "v")
        assert synth_template(stack)["Resources"]["Bucket"]["Properties"] == {"Tags.Name": "v"}

    def test_override_value_may_contain_tokens(self, stack: Stack, synth_template) -> None:
        other = CfnResource(stack, "Other", type="AWS::S3::Bucket")
        resource = CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
        resource.add_property_override("Target", other.ref)
        assert synth_template(stack)["Resources"]["Bucket"]["Properties"] == {
            "Target": {"Ref": "Other"}
        }


class TestDependsOnAndOrdering:
    """DependsOn and reference ordering."""

    def test_add_depends_on(self, stack: Stack, synth_template) -> None:
        a = CfnResource(stack, "A", type="AWS::S3::Bucket")
        b = CfnResource(stack, "B", type="AWS::S3::Bucket")
        a.add_depends_on(b)
        a.add_depends_on(b)
        template = synth_template(stack)
        assert template["Resources"]["A"]["DependsOn"] == ["B"]
        assert list(template["Resources"]) == ["B", "A"]

    def test_cannot_depend_on_self(self, stack: Stack) -> None:
        a = CfnResource(stack, "A", type="AWS::S3::Bucket")
        with pytest.raises(ValidationError):
            a.add_depends_on(a)

    def test_references_order_resources(self, stack: Stack, synth_template) -> None:
        """A resource that refers to another comes after it."""
        consumer = CfnResource(stack, "Consumer", type="AWS::S3::BucketPolicy")
        producer = CfnResource(stack, "Producer", type="AWS::S3::Bucket")
        consumer.cfn_properties["Bucket"] = producer.ref
        assert list(synth_template(stack)["Resources"]) == ["Producer", "Consumer"]

    def test_unrelated_resources_keep_creation_order(self, stack: Stack, synth_template) -> None:
        for name in ("C", "A", "B"):
            CfnResource(stack, name, type="AWS::SNS::Topic")
        assert list(synth_template(stack)["Resources"]) == ["C", "A", "B"]

    def test_resource_cycle_detected(self, stack: Stack, synth_template) -> None:
        a = CfnResource(stack, "A", type="AWS::S3::Bucket")
        b = CfnResource(stack, "B", type="AWS::S3::Bucket")
        a.cfn_properties["Other"] = b.ref
        b.cfn_properties["Other"] = a.ref
        with pytest.raises(SynthesisError, match="Circular dependency"):
            synth_template(stack)

    def test_construct_dependency_becomes_depends_on(self, stack: Stack, synth_template) -> None:
        """Node dependencies between constructs map onto their resources."""
        first = Construct(stack, "First")
        CfnResource(first, "Resource", type="AWS::SNS::Topic")
        second = Construct(stack, "Second")
        CfnResource(second, "Resource", type="AWS::SQS::Queue")
        second.node.add_dependency(first)
        template = synth_template(stack)
        topic_id = next(k for k, v in template["Resources"].items() if v["Type"] == "AWS::SNS::Topic")
        queue = next(v for v in template["Resources"].values() if v["Type"] == "AWS::SQS::Queue")
        assert queue["DependsOn"] == [topic_id]


class TestRemovalPolicy:
    """Deletion and replace policies."""

    def test_retain(self, stack: Stack, synth_template) -> None:
        resource = CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
        resource.apply_removal_policy(RemovalPolicy.RETAIN)
        body = synth_template(stack)["Resources"]["Bucket"]
        assert body["DeletionPolicy"] == "Retain"
        assert body["UpdateReplacePolicy"] == "Retain"

    def test_retain_on_update_or_delete(self, stack: Stack, synth_template) -> None:
        resource = CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
        resource.apply_removal_policy(RemovalPolicy.RETAIN_ON_UPDATE_OR_DELETE)
        body = synth_template(stack)["Resources"]["Bucket"]
        assert body["DeletionPolicy"] == "RetainExceptOnCreate"
        assert body["UpdateReplacePolicy"] == "Retain"

    def test_snapshot_validation_behind_flag(self) -> None:
        """Unsupported snapshot policies are rejected only when the flag is on."""
        lenient = Stack(App(), "Lenient")
        CfnResource(lenient, "Topic", type="AWS::SNS::Topic").apply_removal_policy(
            RemovalPolicy.SNAPSHOT
        )
        strict = Stack(App(context={VALIDATE_SNAPSHOT_REMOVAL_POLICY: True}), "Strict")
        with pytest.raises(ValidationError, match="snapshot"):
            CfnResource(strict, "Topic", type="AWS::SNS::Topic").apply_removal_policy(
                RemovalPolicy.SNAPSHOT
            )
        CfnResource(strict, "Db", type="AWS::RDS::DBInstance").apply_removal_policy(
            RemovalPolicy.SNAPSHOT
        )


class TestOtherElements:
    """Outputs, parameters, conditions and mappings."""

    def test_output(self, stack: Stack, synth_template) -> None:
        bucket = CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
        CfnOutput(stack, "BucketName", value=bucket.ref, description="name", export_name="Shared")
        assert synth_template(stack)["Outputs"]["BucketName"] == {
            "Description": "name",
            "Value": {"Ref": "Bucket"},
            "Export": {"Name": "Shared"},
        }

    def test_output_requires_value(self, stack: Stack) -> None:
        with pytest.raises(ValidationError):
            CfnOutput(stack, "Empty", value=None)

    def test_output_import_value(self, stack: Stack) -> None:
        output = CfnOutput(stack, "Out", value="v", export_name="Shared")
        assert stack.resolve(output.import_value) == {"Fn::ImportValue": "Shared"}
        with pytest.raises(ValidationError, match="export_name"):
            _ = CfnOutput(stack, "NoExport", value="v").import_value

    def test_parameter(self, stack: Stack, synth_template) -> None:
        param = CfnParameter(stack, "Size", type="Number", default=3, min_value=1)
        CfnResource(stack, "Volume", type="AWS::EC2::Volume", properties={"Size": param.value_as_number})
        template = synth_template(stack)
        assert template["Parameters"]["Size"] == {"Type": "Number", "Default": 3, "MinValue": 1}
        assert template["Resources"]["Volume"]["Properties"]["Size"] == {"Ref": "Size"}

    def test_parameter_value_type_checks(self, stack: Stack) -> None:
        param = CfnParameter(stack, "Names", type="CommaDelimitedList")
        assert Token.is_unresolved(param.value_as_list)
        with pytest.raises(ValidationError):
            _ = param.value_as_string
        with pytest.raises(ValidationError):
            _ = param.value_as_number

    def test_condition(self, stack: Stack, synth_template) -> None:
        condition = CfnCondition(stack, "IsProd", expression=Fn.condition_equals("prod", "prod"))
        resource = CfnResource(stack, "Topic", type="AWS::SNS::Topic")
        resource.cfn_options.condition = condition
        template = synth_template(stack)
        assert template["Conditions"] == {"IsProd": {"Fn::Equals": ["prod", "prod"]}}
        assert template["Resources"]["Topic"]["Condition"] == "IsProd"
        assert stack.resolve(condition) == {"Condition": "IsProd"}

    def test_mapping(self, stack: Stack, synth_template) -> None:
        mapping = CfnMapping(stack, "Regions", mapping={"us-east-1": {"Ami": "ami-1"}})
        value = mapping.find_in_map("us-east-1", "Ami")
        assert stack.resolve(value) == {"Fn::FindInMap": ["Regions", "us-east-1", "Ami"]}
        assert synth_template(stack)["Mappings"] == {"Regions": {"us-east-1": {"Ami": "ami-1"}}}

    def test_lazy_mapping_answers_concrete_lookups(self, stack: Stack, synth_template) -> None:
        """A lazy mapping is only rendered when a lookup needs the template."""
        mapping = CfnMapping(stack, "Regions", mapping={"us-east-1": {"Ami": "ami-1"}}, lazy=True)
        assert mapping.find_in_map("us-east-1", "Ami") == "ami-1"
        CfnResource(stack, "Topic", type="AWS::SNS::Topic")
        assert "Mappings" not in synth_template(stack)

    def test_mapping_missing_key(self, stack: Stack) -> None:
        mapping = CfnMapping(stack, "Regions", mapping={"us-east-1": {"Ami": "ami-1"}})
        with pytest.raises(ValidationError, match="top-level key"):
            mapping.find_in_map("eu-west-1", "Ami")
        with pytest.raises(ValidationError, match="second-level key"):
            mapping.find_in_map("us-east-1", "Missing")
