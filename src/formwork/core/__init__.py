"""Core formwork functionality: constructs, tokens, stacks, synthesis, and the cloud assembly."""

from .annotations import AnnotationMessage, Annotations, MessageLevel
from .app import App
from .arn import Arn, ArnComponents, ArnFormat
from .aspects import AspectApplication, AspectPriority, Aspects, IAspect, Tag, Tags
from .assembly import CloudAssembly, StackArtifact
from .cfn import (
    CfnCondition,
    CfnElement,
    CfnMapping,
    CfnOutput,
    CfnParameter,
    CfnResource,
    RemovalPolicy,
)
from .construct import Construct, ConstructOrder, Dependable, DependencyGroup, Node
from .duration import Duration
from .errors import (
    DependencyCycleError,
    ErrorContext,
    FormworkError,
    SynthesisError,
    TokenResolutionError,
    ValidationError,
)
from .feature_flags import FLAGS, FeatureFlags, recommended_flags
from .intrinsics import Aws, Fn
from .lazy import Lazy
from .names import Names, make_unique_id
from .references import CfnReference
from .resolve import ResolveContext, Tokenization
from .resource import PhysicalName, Resource
from .stack import Environment, Stack
from .synthesis import synthesize
from .tags import TagManager, TagType
from .tokens import IResolvable, Intrinsic, Token, TokenComparison

__all__ = [
    "AnnotationMessage",
    "Annotations",
    "App",
    "Arn",
    "ArnComponents",
    "ArnFormat",
    "AspectApplication",
    "AspectPriority",
    "Aspects",
    "Aws",
    "CfnCondition",
    "CfnElement",
    "CfnMapping",
    "CfnOutput",
    "CfnParameter",
    "CfnReference",
    "CfnResource",
    "CloudAssembly",
    "Construct",
    "ConstructOrder",
    "Dependable",
    "DependencyCycleError",
    "DependencyGroup",
    "Duration",
    "Environment",
    "ErrorContext",
    "FLAGS",
    "FeatureFlags",
    "Fn",
    "FormworkError",
    "IAspect",
    "IResolvable",
    "Intrinsic",
    "Lazy",
    "MessageLevel",
    "Names",
    "Node",
    "PhysicalName",
    "RemovalPolicy",
    "Resource",
    "ResolveContext",
    "Stack",
    "StackArtifact",
    "SynthesisError",
    "Tag",
    "TagManager",
    "TagType",
    "Tags",
    "Token",
    "TokenComparison",
    "TokenResolutionError",
    "Tokenization",
    "ValidationError",
    "make_unique_id",
    "recommended_flags",
    "synthesize",
]
