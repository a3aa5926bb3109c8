"""IAM: policy statements, documents, principals, grants, policies and roles."""

from .document import PolicyDocument, merge_statements
from .grant import Grant, IResourceWithPolicy
from .managed_policy import IManagedPolicy, ManagedPolicy
from .policy import Policy
from .principals import (
    AccountPrincipal,
    AccountRootPrincipal,
    AddToPrincipalPolicyResult,
    AnyPrincipal,
    ArnPrincipal,
    CompositePrincipal,
    FederatedPrincipal,
    IPrincipal,
    PrincipalBase,
    PrincipalPolicyFragment,
    PrincipalWithConditions,
    ServicePrincipal,
)
from .role import ImmutableRole, IRole, Role
from .statement import Effect, PolicyStatement

__all__ = [
    "AccountPrincipal",
    "AccountRootPrincipal",
    "AddToPrincipalPolicyResult",
    "AnyPrincipal",
    "ArnPrincipal",
    "CompositePrincipal",
    "Effect",
    "FederatedPrincipal",
    "Grant",
    "IManagedPolicy",
    "IPrincipal",
    "IResourceWithPolicy",
    "IRole",
    "ImmutableRole",
    "ManagedPolicy",
    "Policy",
    "PolicyDocument",
    "PolicyStatement",
    "PrincipalBase",
    "PrincipalPolicyFragment",
    "PrincipalWithConditions",
    "Role",
    "ServicePrincipal",
    "merge_statements",
]
