from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from pydantic import (
    ConfigDict,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
)

from tradelab.core.exceptions import ParameterValidationError

if TYPE_CHECKING:
    from tradelab.strats.base import Strategy, StrategyParameterDefinition

_FIELD_TYPES: Dict[str, Any] = {
    "number": Union[StrictInt, StrictFloat],
    "string": StrictStr,
    "boolean": StrictBool,
}


def default_parameters(
    definitions: Sequence["StrategyParameterDefinition"],
) -> Dict[str, Any]:
    """Map each declared parameter name to its default value."""
    return {d.name: d.default for d in definitions}


@lru_cache(maxsize=256)
def _schema_for(
    strategy_id: str, definitions: Tuple["StrategyParameterDefinition", ...]
):
    fields: Dict[str, Any] = {}
    for d in definitions:
        field_type = _FIELD_TYPES.get(d.type)
        if field_type is None:
            raise ParameterValidationError(
                strategy_id, [f"{d.name}: unsupported parameter type {d.type!r}"]
            )
        fields[d.name] = (field_type, d.default)
    model_name = "Params_" + "".join(ch if ch.isalnum() else "_" for ch in strategy_id)
    return create_model(
        model_name,
        __config__=ConfigDict(extra="forbid", frozen=True),
        **fields,
    )


def _format_errors(exc: ValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part is not None)
        messages.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return messages


def resolve_parameters(
    strategy: "Strategy", supplied: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """
    Merge ``supplied`` over the strategy's defaults and validate the result.

    Unknown keys, values of the wrong type and values outside a declared option
    list raise ``ParameterValidationError``. Numeric ``min``/``max`` bounds
    describe the optimizer search space and are not enforced here.
    """
    definitions = tuple(strategy.parameters)
    schema = _schema_for(strategy.id, definitions)
    try:
        model = schema.model_validate(dict(supplied or {}))
    except ValidationError as exc:
        raise ParameterValidationError(strategy.id, _format_errors(exc)) from exc

    resolved = model.model_dump()
    errors = []
    for d in definitions:
        allowed = d.option_values
        if allowed and resolved[d.name] not in allowed:
            errors.append(f"{d.name}: {resolved[d.name]!r} is not one of {list(allowed)}")
    if errors:
        raise ParameterValidationError(strategy.id, errors)
    return resolved


__all__ = ["default_parameters", "resolve_parameters"]
