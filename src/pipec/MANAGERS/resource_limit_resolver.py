"""
Resolution of per-step resource limits against operator-wide ceilings.
"""
from typing import Dict, TypeVar, Union

from ..MODELS.compilation_context import ResourceLimit
from ..MODELS.step_declaration import StepDeclaration

T = TypeVar("T", int, str)

DIMENSIONS = (
    "mem_swap_limit",
    "mem_limit",
    "shm_size",
    "cpu_quota",
    "cpu_shares",
    "cpu_set",
)


class ResourceLimitResolver:
    """
    Applies ceilings one resource dimension at a time.
    A zero or empty ceiling means no ceiling is set.
    """
    @staticmethod
    def resolve(per_step: T, ceiling: T) -> T:
        """
        Returns the ceiling when it is set, otherwise the per-step value.

        :param per_step: The value declared on the step.
        :param ceiling: The operator ceiling.
        :return: The effective value.
        """
        if ceiling:
            return ceiling
        return per_step

    @classmethod
    def resolve_all(cls, declaration: StepDeclaration, ceiling: ResourceLimit) -> Dict[str, Union[int, str]]:
        """
        Resolves every resource dimension independently.

        :param declaration: The step declaration.
        :param ceiling: The operator ceilings.
        :return: Mapping of resource field names to effective values.
        """
        return {
            dimension: cls.resolve(getattr(declaration, dimension), getattr(ceiling, dimension))
            for dimension in DIMENSIONS
        }
