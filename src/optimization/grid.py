"""
Parameter grid enumeration.

Combinations are produced lazily by an odometer: parameters keep their
declaration order, each axis runs through its values in ascending order and
the last parameter varies fastest.
"""

import math
from collections.abc import Iterator, Sequence

from src.core.exceptions.backtest import ValidationError
from src.core.models.optimization import OptimizationParameter
from src.core.protocols import ParameterSet


def total_combinations(parameters: Sequence[OptimizationParameter]) -> int:
    """Grid size: product of ``floor((max - min) / step + 1)`` over parameters."""
    return math.prod(parameter.steps for parameter in parameters)


class ParameterGrid:
    """Cartesian grid over a list of optimization parameters."""

    def __init__(self, parameters: Sequence[OptimizationParameter]) -> None:
        names = [parameter.name for parameter in parameters]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate optimization parameters: {duplicates}")
        self.parameters = tuple(parameters)
        self._values = [parameter.values() for parameter in self.parameters]

    def __len__(self) -> int:
        return total_combinations(self.parameters)

    def __iter__(self) -> Iterator[ParameterSet]:
        if any(not values for values in self._values):
            return

        indices = [0] * len(self.parameters)
        while True:
            yield {
                parameter.name: values[index]
                for parameter, values, index in zip(
                    self.parameters, self._values, indices, strict=True
                )
            }

            # Advance the odometer from the last axis
            position = len(indices) - 1
            while position >= 0:
                indices[position] += 1
                if indices[position] < len(self._values[position]):
                    break
                indices[position] = 0
                position -= 1
            if position < 0:
                return
