import pytest
from pipec.MODELS.compilation_context import CompilationContext
from pipec.COMPILER.step_assembler import StepAssembler


@pytest.fixture
def context():
    return CompilationContext(prefix="p", base="/ci", path="job1")


@pytest.fixture
def assembler(context):
    return StepAssembler(context)
