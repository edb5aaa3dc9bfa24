"""
Models for the pipeline-wide compilation context shared by every step.
"""
from typing import List, Dict, Optional, TYPE_CHECKING
from pydantic import BaseModel, ConfigDict, Field

from ..REGISTRY.image_reference import match_image

if TYPE_CHECKING:
    from .step_declaration import StepDeclaration


class Secret(BaseModel):
    """
    A secret made available to the pipeline, optionally restricted to
    specific plugin images or pipeline events.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    value: str
    allowed_plugins: List[str] = []
    events: List[str] = []

    def available(self, declaration: "StepDeclaration", event: Optional[str] = None) -> bool:
        """
        Checks whether the secret may be exposed to the given declaration.

        :param declaration: The step declaration asking for the secret.
        :param event: The pipeline event being compiled, if known.
        :return: True if the declaration may see the secret.
        """
        if self.allowed_plugins:
            if not declaration.is_plugin():
                return False
            if not match_image(declaration.image, *self.allowed_plugins):
                return False
        if self.events and event is not None:
            return event in self.events
        return True


class Registry(BaseModel):
    """
    Credentials for an image registry.
    """
    model_config = ConfigDict(frozen=True)

    hostname: str
    username: str = ""
    password: str = ""
    email: str = ""


class ResourceLimit(BaseModel):
    """
    Operator-wide resource ceilings. Zero or empty means no ceiling.
    """
    model_config = ConfigDict(frozen=True)

    mem_swap_limit: int = 0
    mem_limit: int = 0
    shm_size: int = 0
    cpu_quota: int = 0
    cpu_shares: int = 0
    cpu_set: str = ""


class CompilationContext(BaseModel):
    """
    Immutable configuration for one pipeline compile.
    Built once and shared by every step assembly.

    Freezing only blocks field assignment. Callers must not change the nested
    lists and dicts in place while steps are being assembled.
    """
    model_config = ConfigDict(frozen=True)

    prefix: str
    base: str = "/ci"
    path: str = ""
    local: bool = False

    volumes: List[str] = []
    networks: List[str] = []
    environment: Dict[str, str] = {}

    # keyed by lower-case secret name
    secrets: Dict[str, Secret] = {}
    registries: List[Registry] = []
    escalated: List[str] = []
    reslimit: ResourceLimit = Field(default_factory=ResourceLimit)

    event: Optional[str] = None
