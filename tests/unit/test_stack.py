"""Tests for stacks, ARNs and typed resources."""

from __future__ import annotations

import pytest

from formwork.core import (
    App,
    Arn,
    ArnComponents,
    ArnFormat,
    Aws,
    CfnResource,
    Construct,
    DependencyCycleError,
    Environment,
    ErrorContext,
    RemovalPolicy,
    Resource,
    Stack,
    Token,
    ValidationError,
)
from formwork.core.feature_flags import ENABLE_PARTITION_LITERALS
from formwork.core.stack import partition_for_region


class TestStackBasics:
    """Naming, environment and lookup."""

    def test_stack_name_defaults_to_id(self, stack: Stack) -> None:
        assert stack.stack_name == "TestStack"
        assert stack.artifact_id == "TestStack"
        assert stack.template_file == "TestStack.template.json"

    def test_nested_stack_name_is_unique(self, app: App) -> None:
        stage = Construct(app, "Prod")
        nested = Stack(stage, "Api")
        assert nested.stack_name.startswith("ProdApi")
        assert len(nested.stack_name) == len("ProdApi") + 8

    def test_explicit_stack_name(self, app: App) -> None:
        assert Stack(app, "Id", stack_name="custom-name").stack_name == "custom-name"

    def test_invalid_stack_name(self, app: App) -> None:
        with pytest.raises(ValidationError, match="regular expression"):
            Stack(app, "Id", stack_name="1-starts-with-digit")
        with pytest.raises(ValidationError, match="128"):
            Stack(app, "Long", stack_name="a" * 129)

    def test_description_too_long(self, app: App) -> None:
        with pytest.raises(ValidationError, match="1024"):
            Stack(app, "Id", description="x" * 1025)

    def test_stack_without_scope_creates_app(self) -> None:
        stack = Stack()
        assert isinstance(stack.node.root, App)
        assert stack.stack_name == "Default"
        assert stack.artifact_id == "Default"

    def test_environment_agnostic(self, stack: Stack) -> None:
        """Without an env, account and region are pseudo parameters."""
        assert stack.account == Aws.ACCOUNT_ID
        assert stack.region == Aws.REGION
        assert stack.environment == "aws://unknown-account/unknown-region"

    def test_concrete_environment(self, env_stack: Stack) -> None:
        assert env_stack.account == "123456789012"
        assert env_stack.region == "us-east-1"
        assert env_stack.environment == "aws://123456789012/us-east-1"

    def test_stack_of(self, stack: Stack) -> None:
        inner = Construct(Construct(stack, "A"), "B")
        assert Stack.of(inner) is stack
        assert Stack.of(stack) is stack
        with pytest.raises(ValidationError, match="no Stack found"):
            Stack.of(Construct(App(), "Loose"))

    def test_stack_of_error_carries_location(self) -> None:
        loose = Construct(Construct(App(), "Outer"), "Loose")
        with pytest.raises(ValidationError) as excinfo:
            Stack.of(loose)
        assert excinfo.value.context == ErrorContext("Outer/Loose", "Construct")
        assert str(excinfo.value).startswith("[Outer/Loose (Construct)] should be created")


class TestStackTemplate:
    """Template-level output."""

    def test_empty_sections_omitted(self, stack: Stack, synth_template) -> None:
        assert synth_template(stack) == {}

    def test_description_and_transform(self, app: App, synth_template) -> None:
        stack = Stack(app, "Described", description="hello")
        stack.add_transform("AWS::Serverless-2016-10-31")
        stack.add_transform("AWS::Serverless-2016-10-31")
        template = synth_template(stack)
        assert template["Description"] == "hello"
        assert template["Transform"] == "AWS::Serverless-2016-10-31"

    def test_sections_in_standard_order(self, stack: Stack, synth_template) -> None:
        from formwork.core import CfnOutput, CfnParameter

        CfnOutput(stack, "Out", value="v")
        CfnResource(stack, "Topic", type="AWS::SNS::Topic")
        CfnParameter(stack, "Param")
        stack.template_options.description = "ordered"
        assert list(synth_template(stack)) == ["Description", "Parameters", "Resources", "Outputs"]

    def test_to_json_string(self, stack: Stack) -> None:
        topic = CfnResource(stack, "Topic", type="AWS::SNS::Topic")
        assert stack.resolve(stack.to_json_string({"a": 1})) == '{"a": 1}'
        assert stack.resolve(stack.to_json_string({"topic": topic.ref})) == {
            "Fn::Join": ["", ['{"topic":"', {"Ref": "Topic"}, '"}']]
        }


class TestStackDependencies:
    """Dependencies between stacks."""

    def test_add_dependency(self, app: App) -> None:
        a = Stack(app, "A")
        b = Stack(app, "B")
        b.add_dependency(a, "because")
        assert b.dependencies == [a]
        assert b.dependency_reasons(a) == ["because"]

    def test_self_dependency_rejected(self, stack: Stack) -> None:
        with pytest.raises(ValidationError, match="itself"):
            stack.add_dependency(stack)

    def test_cycle_rejected(self, app: App) -> None:
        a = Stack(app, "A")
        b = Stack(app, "B")
        c = Stack(app, "C")
        b.add_dependency(a)
        c.add_dependency(b)
        with pytest.raises(DependencyCycleError) as excinfo:
            a.add_dependency(c)
        assert excinfo.value.cycle == ["A", "C", "B", "A"]

    def test_cross_app_dependency_rejected(self) -> None:
        a = Stack(App(), "A")
        b = Stack(App(), "B")
        with pytest.raises(ValidationError, match="different apps"):
            b.add_dependency(a)

    def test_assembly_in_dependency_order(self, app: App) -> None:
        """Dependencies are synthesized first even if created later."""
        consumer = Stack(app, "Consumer")
        producer = Stack(app, "Producer")
        consumer.add_dependency(producer)
        assembly = app.synth()
        assert [s.stack_name for s in assembly.stacks] == ["Producer", "Consumer"]
        assert assembly.get_stack_by_name("Consumer").dependencies == ["Producer"]

    def test_remove_dependency(self, app: App) -> None:
        a = Stack(app, "A")
        b = Stack(app, "B")
        b.add_dependency(a)
        b.remove_dependency(a)
        assert b.dependencies == []


class TestPartition:
    """Partition and URL suffix."""

    def test_partition_is_pseudo_parameter_by_default(self, env_stack: Stack) -> None:
        assert env_stack.partition == Aws.PARTITION
        assert env_stack.url_suffix == Aws.URL_SUFFIX

    def test_partition_literal_with_flag(self) -> None:
        app = App(context={ENABLE_PARTITION_LITERALS: True})
        stack = Stack(app, "China", env=Environment(region="cn-north-1"))
        assert stack.partition == "aws-cn"
        assert stack.url_suffix == "amazonaws.com.cn"
        agnostic = Stack(app, "Agnostic")
        assert agnostic.partition == Aws.PARTITION

    @pytest.mark.parametrize(
        ("region", "partition"),
        [
            ("us-east-1", "aws"),
            ("cn-northwest-1", "aws-cn"),
            ("us-gov-west-1", "aws-us-gov"),
            ("us-iso-east-1", "aws-iso"),
            ("us-isob-east-1", "aws-iso-b"),
        ],
    )
    def test_partition_for_region(self, region: str, partition: str) -> None:
        assert partition_for_region(region) == partition


class TestArn:
    """Formatting and splitting ARNs."""

    def test_format_without_stack(self) -> None:
        arn = Arn.format(
            ArnComponents(service="s3", resource="bucket", partition="aws", region="", account="")
        )
        assert arn == "arn:aws:s3:::bucket"

    def test_format_requires_parts_without_stack(self) -> None:
        with pytest.raises(ValidationError, match="required"):
            Arn.format(ArnComponents(service="s3", resource="bucket"))

    def test_format_with_resource_name(self) -> None:
        base = {"partition": "aws", "region": "us-east-1", "account": "123"}
        assert (
            Arn.format(ArnComponents(service="sqs", resource="queue", resource_name="q", **base))
            == "arn:aws:sqs:us-east-1:123:queue/q"
        )
        assert (
            Arn.format(
                ArnComponents(
                    service="lambda",
                    resource="function",
                    resource_name="fn",
                    arn_format=ArnFormat.COLON_RESOURCE_NAME,
                    **base,
                )
            )
            == "arn:aws:lambda:us-east-1:123:function:fn"
        )

    def test_stack_format_arn(self, env_stack: Stack) -> None:
        """Stack defaults fill in the partition, region and account."""
        arn = env_stack.format_arn(service="sqs", resource="queue", resource_name="q")
        assert Token.is_unresolved(arn)
        assert env_stack.resolve(arn) == {
            "Fn::Join": [
                "",
                ["arn:", {"Ref": "AWS::Partition"}, ":sqs:us-east-1:123456789012:queue/q"],
            ]
        }

    def test_split_concrete(self) -> None:
        parts = Arn.split("arn:aws:iam::123456789012:role/path/MyRole", ArnFormat.SLASH_RESOURCE_NAME)
        assert parts.service == "iam"
        assert parts.region == ""
        assert parts.account == "123456789012"
        assert parts.resource == "role"
        assert parts.resource_name == "path/MyRole"

    def test_split_colon(self) -> None:
        parts = Arn.split("arn:aws:lambda:us-east-1:1:function:fn:alias", ArnFormat.COLON_RESOURCE_NAME)
        assert parts.resource == "function"
        assert parts.resource_name == "fn:alias"

    @pytest.mark.parametrize("bad", ["nope", "arn:aws:s3", "xrn:aws:s3:::b", "arn:aws::::b"])
    def test_split_malformed(self, bad: str) -> None:
        with pytest.raises(ValidationError):
            Arn.split(bad, ArnFormat.NO_RESOURCE_NAME)

    def test_split_token(self, stack: Stack) -> None:
        """Token ARNs split into Fn::Select expressions."""
        parts = Arn.split(Aws.STACK_ID, ArnFormat.SLASH_RESOURCE_NAME)
        assert stack.resolve(parts.account) == {
            "Fn::Select": [4, {"Fn::Split": [":", {"Ref": "AWS::StackId"}]}]
        }

    def test_extract_resource_name(self) -> None:
        assert Arn.extract_resource_name("arn:aws:iam::1:role/MyRole", "role") == "MyRole"
        with pytest.raises(ValidationError, match="Expected resource type"):
            Arn.extract_resource_name("arn:aws:iam::1:user/Bob", "role")


class TestResource:
    """The typed resource base class."""

    def test_environment_from_stack(self, env_stack: Stack) -> None:
        resource = Resource(env_stack, "Thing")
        assert resource.stack is env_stack
        assert resource.env.account == "123456789012"
        assert resource.env.region == "us-east-1"

    def test_environment_from_arn(self, env_stack: Stack) -> None:
        """Account comes from the ARN; an empty region falls back to the stack's."""
        resource = Resource(
            env_stack, "Imported", environment_from_arn="arn:aws:iam::999999999999:role/x"
        )
        assert resource.env.account == "999999999999"
        assert resource.env.region == "us-east-1"

    def test_account_and_arn_are_exclusive(self, env_stack: Stack) -> None:
        with pytest.raises(ValidationError, match="at most one"):
            Resource(env_stack, "Bad", account="1", environment_from_arn="arn:aws:iam::1:role/x")

    def test_apply_removal_policy_to_default_child(self, stack: Stack, synth_template) -> None:
        resource = Resource(stack, "Thing")
        CfnResource(resource, "Resource", type="AWS::SNS::Topic")
        resource.apply_removal_policy(RemovalPolicy.DESTROY)
        body = next(iter(synth_template(stack)["Resources"].values()))
        assert body["DeletionPolicy"] == "Delete"

    def test_apply_removal_policy_without_child(self, stack: Stack) -> None:
        with pytest.raises(ValidationError, match="RemovalPolicy"):
            Resource(stack, "Empty").apply_removal_policy(RemovalPolicy.RETAIN)
