"""
Unit tests for resource ceiling resolution.
"""
import pytest
from pipec.MANAGERS.resource_limit_resolver import ResourceLimitResolver, DIMENSIONS
from pipec.MODELS.compilation_context import ResourceLimit
from pipec.MODELS.step_declaration import StepDeclaration


def test_resolve():
    assert ResourceLimitResolver.resolve(10, 0) == 10
    assert ResourceLimitResolver.resolve(10, 20) == 20
    assert ResourceLimitResolver.resolve(10, 5) == 5
    assert ResourceLimitResolver.resolve("1", "") == "1"
    assert ResourceLimitResolver.resolve("1", "0-3") == "0-3"
    assert ResourceLimitResolver.resolve(0, 0) == 0


@pytest.mark.parametrize("dimension", DIMENSIONS)
def test_each_dimension_independent(dimension):
    """Test that a ceiling on one dimension leaves the others untouched."""
    declared = {
        "mem_swap_limit": 1, "mem_limit": 2, "shm_size": 3,
        "cpu_quota": 4, "cpu_shares": 5, "cpu_set": "6",
    }
    ceiling_value = "9" if dimension == "cpu_set" else 99
    decl = StepDeclaration(name="a", **declared)
    limits = ResourceLimitResolver.resolve_all(decl, ResourceLimit(**{dimension: ceiling_value}))

    for name in DIMENSIONS:
        expected = ceiling_value if name == dimension else declared[name]
        assert limits[name] == expected
