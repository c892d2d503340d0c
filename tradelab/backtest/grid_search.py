from __future__ import annotations

import itertools
import math
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Sequence

from loguru import logger

from tradelab.strats.base import StrategyParameterDefinition

DEFAULT_WARNING_THRESHOLD = 1000


def _decimals(value: float) -> int:
    exponent = Decimal(str(value)).normalize().as_tuple().exponent
    return max(0, -int(exponent)) if isinstance(exponent, int) else 0


def parameter_values(definition: StrategyParameterDefinition) -> List[Any]:
    """
    Enumerate ``min, min + step, ...`` up to ``max`` for one parameter.

    ``max`` is always included even when the last step would overshoot it.
    Integer bounds and step yield ints; otherwise values are rounded to the
    precision of the inputs to keep float drift out of the grid.
    """
    lo, hi, step = definition.min, definition.max, definition.step
    integral = all(isinstance(v, int) and not isinstance(v, bool) for v in (lo, hi, step))
    lo_f, hi_f, step_f = float(lo), float(hi), float(step)

    count = int(math.floor((hi_f - lo_f) / step_f + 1e-9))
    places = max(_decimals(lo_f), _decimals(step_f), _decimals(hi_f))
    values: List[Any] = []
    for k in range(count + 1):
        raw = lo_f + k * step_f
        values.append(int(round(raw)) if integral else round(raw, places))
    if not values or not math.isclose(float(values[-1]), hi_f, abs_tol=1e-9):
        values.append(int(hi) if integral else hi_f)
    return values


def expand_param_grid(grid: Dict[str, Iterable[Any]]) -> List[Dict[str, Any]]:
    if not grid:
        return [{}]
    keys = list(grid.keys())
    combos = []
    for values in itertools.product(*(grid[k] for k in keys)):
        combos.append(dict(zip(keys, values, strict=True)))
    return combos


def generate_parameter_combinations(
    definitions: Sequence[StrategyParameterDefinition],
    *,
    warning_threshold: int = DEFAULT_WARNING_THRESHOLD,
    label: str = "",
) -> List[Dict[str, Any]]:
    """
    Cartesian product over every optimizable parameter.

    Parameters that are not optimizable, including numbers with NaN bounds or a
    non-positive step, stay at their default in every combination. With nothing
    to optimize the single all-defaults combination is returned.
    """
    defaults = {d.name: d.default for d in definitions}
    grid: Dict[str, List[Any]] = {}
    for d in definitions:
        if d.type != "number":
            continue
        if d.is_optimizable:
            grid[d.name] = parameter_values(d)
        elif None not in (d.min, d.max, d.step):
            logger.warning(
                "[grid] {} skipping {} (min={} max={} step={}); held at default {}",
                label or "strategy",
                d.name,
                d.min,
                d.max,
                d.step,
                d.default,
            )

    if not grid:
        return [dict(defaults)]

    combos = [{**defaults, **combo} for combo in expand_param_grid(grid)]
    if len(combos) > warning_threshold:
        logger.warning(
            "[grid] {} has {} parameter combinations (threshold {}); this may be slow",
            label or "strategy",
            len(combos),
            warning_threshold,
        )
    return combos


__all__ = [
    "expand_param_grid",
    "generate_parameter_combinations",
    "parameter_values",
]
