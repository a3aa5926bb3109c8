"""
Deploy-time intrinsic functions and pseudo parameters.

``Fn`` builds ``Fn::*`` expressions. Where every argument is already a
concrete value the function is evaluated in Python instead, so templates
only carry expressions that really need the deployment engine.
"""

from __future__ import annotations

from typing import Any

from . import cfn_lang
from .errors import ValidationError
from .resolve import ResolveContext
from .tokens import IResolvable, Intrinsic, Token

MAX_CONDITIONS = 10


class _FnJoin(IResolvable):
    """Lazy ``Fn::Join`` that collapses literal parts after resolution."""

    display_hint = "Fn::Join"

    def __init__(self, delimiter: str, values: list[Any]):
        if not values:
            raise ValidationError("Fn::Join requires at least one value")
        self._delimiter = delimiter
        self._values = values

    def resolve(self, context: ResolveContext) -> Any:
        resolved = context.resolve(self._values)
        if not isinstance(resolved, list):
            return {"Fn::Join": [self._delimiter, resolved]}
        parts = cfn_lang.minimal_join(self._delimiter, resolved)
        if len(parts) == 1 and isinstance(parts[0], str):
            return parts[0]
        return {"Fn::Join": [self._delimiter, parts]}


def _check_conditions(name: str, conditions: tuple[Any, ...]) -> None:
    if not conditions or len(conditions) > MAX_CONDITIONS:
        raise ValidationError(
            f"{name} takes between 1 and {MAX_CONDITIONS} conditions, got {len(conditions)}"
        )


class Fn:
    """Template intrinsic functions."""

    @staticmethod
    def ref(logical_name: str) -> str:
        """``{"Ref": logical_name}`` as a string token."""
        return Token.as_string(Intrinsic({"Ref": logical_name}, display_hint=logical_name))

    @staticmethod
    def get_att(logical_name_of_resource: str, attribute_name: str) -> IResolvable:
        return Intrinsic(
            {"Fn::GetAtt": [logical_name_of_resource, attribute_name]},
            display_hint=f"{logical_name_of_resource}.{attribute_name}",
        )

    @staticmethod
    def join(delimiter: str, list_of_values: list[Any]) -> str:
        """
        Join values with a delimiter.

        Raises:
            ValidationError: If ``list_of_values`` is empty
        """
        if not list_of_values:
            raise ValidationError("Fn.join requires at least one value")
        if Token.is_unresolved(list_of_values) or any(
            Token.is_unresolved(v) for v in list_of_values
        ):
            return Token.as_string(_FnJoin(delimiter, list_of_values))
        return delimiter.join(str(v) for v in list_of_values)

    @staticmethod
    def split(delimiter: str, source: str, assumed_length: int | None = None) -> list[str]:
        """
        Split a string.

        With ``assumed_length`` an unresolved source yields that many
        ``Fn::Select`` elements instead of a single list token.
        """
        if not Token.is_unresolved(source):
            return source.split(delimiter)
        split = Intrinsic({"Fn::Split": [delimiter, source]})
        if assumed_length is None:
            return Token.as_list(split)
        encoded = Token.as_list(split)
        return [Fn.select(i, encoded) for i in range(assumed_length)]

    @staticmethod
    def select(index: int, array: list[Any]) -> str:
        if index < 0:
            raise ValidationError(f"Fn.select index must be non-negative, got {index}")
        if not Token.is_unresolved(array) and index >= len(array):
            raise ValidationError(
                f"Fn.select index {index} is out of range for a list of length {len(array)}"
            )
        if not Token.is_unresolved(array) and not any(Token.is_unresolved(v) for v in array):
            return array[index]
        return Token.as_string(Intrinsic({"Fn::Select": [index, array]}))

    @staticmethod
    def sub(body: str, variables: dict[str, Any] | None = None) -> str:
        value: Any = [body, variables] if variables else body
        return Token.as_string(Intrinsic({"Fn::Sub": value}))

    @staticmethod
    def base64(data: str) -> str:
        return Token.as_string(Intrinsic({"Fn::Base64": data}))

    @staticmethod
    def get_azs(region: str | None = None) -> list[str]:
        return Token.as_list(Intrinsic({"Fn::GetAZs": region or ""}))

    @staticmethod
    def import_value(shared_value_to_import: str) -> str:
        return Token.as_string(Intrinsic({"Fn::ImportValue": shared_value_to_import}))

    @staticmethod
    def find_in_map(map_name: str, top_level_key: str, second_level_key: str) -> str:
        return Token.as_string(
            Intrinsic({"Fn::FindInMap": [map_name, top_level_key, second_level_key]})
        )

    # -------------------------------------------------------------------------
    # Conditions
    # -------------------------------------------------------------------------

    @staticmethod
    def condition_equals(lhs: Any, rhs: Any) -> IResolvable:
        return Intrinsic({"Fn::Equals": [lhs, rhs]})

    @staticmethod
    def condition_and(*conditions: Any) -> Any:
        """``Fn::And`` over 2 to 10 conditions. A single condition is returned as-is."""
        _check_conditions("Fn.condition_and", conditions)
        if len(conditions) == 1:
            return conditions[0]
        return Intrinsic({"Fn::And": list(conditions)})

    @staticmethod
    def condition_or(*conditions: Any) -> Any:
        """``Fn::Or`` over 2 to 10 conditions. A single condition is returned as-is."""
        _check_conditions("Fn.condition_or", conditions)
        if len(conditions) == 1:
            return conditions[0]
        return Intrinsic({"Fn::Or": list(conditions)})

    @staticmethod
    def condition_not(condition: Any) -> IResolvable:
        return Intrinsic({"Fn::Not": [condition]})

    @staticmethod
    def condition_if(condition_id: str, value_if_true: Any, value_if_false: Any) -> IResolvable:
        return Intrinsic({"Fn::If": [condition_id, value_if_true, value_if_false]})


def _pseudo(name: str) -> str:
    return Token.as_string(Intrinsic({"Ref": f"AWS::{name}"}, display_hint=f"AWS::{name}"))


class Aws:
    """Pseudo parameters, resolved by the deployment engine."""

    ACCOUNT_ID = _pseudo("AccountId")
    REGION = _pseudo("Region")
    PARTITION = _pseudo("Partition")
    STACK_NAME = _pseudo("StackName")
    STACK_ID = _pseudo("StackId")
    URL_SUFFIX = _pseudo("URLSuffix")
    NO_VALUE = _pseudo("NoValue")
    NOTIFICATION_ARNS = Token.as_list(
        Intrinsic({"Ref": "AWS::NotificationARNs"}, display_hint="AWS::NotificationARNs")
    )
