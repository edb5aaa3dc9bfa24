"""
Models for compiled, backend-neutral execution steps.
"""
from typing import List, Dict
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field

from .step_declaration import BackendOptions


class StepType(str, Enum):
    """
    Kind of unit being compiled.
    """
    STEP = "step"
    SERVICE = "service"


FAILURE_FAIL = "fail"
FAILURE_IGNORE = "ignore"


class Conn(BaseModel):
    """
    A network attachment with the aliases the step is reachable under.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    aliases: List[str] = []


class Auth(BaseModel):
    """
    Registry credentials used to pull the step image.
    """
    model_config = ConfigDict(frozen=True)

    username: str = ""
    password: str = ""
    email: str = ""


class Step(BaseModel):
    """
    A fully resolved step, ready to be handed to an execution backend.

    Freezing only blocks field assignment. The assembler builds fresh lists and
    dicts for every step, so changing one step's environment in place does not
    leak into other steps or the compilation context.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    uuid: str
    type: StepType
    alias: str

    image: str = ""
    pull: bool = False
    detached: bool = False
    privileged: bool = False
    working_dir: str = ""

    environment: Dict[str, str] = {}
    commands: List[str] = []
    extra_hosts: List[str] = []
    volumes: List[str] = []
    tmpfs: List[str] = []
    devices: List[str] = []
    networks: List[Conn] = []
    dns: List[str] = []
    dns_search: List[str] = []
    sysctls: Dict[str, str] = {}

    mem_swap_limit: int = 0
    mem_limit: int = 0
    shm_size: int = 0
    cpu_quota: int = 0
    cpu_shares: int = 0
    cpu_set: str = ""

    auth_config: Auth = Field(default_factory=Auth)
    on_success: bool = True
    on_failure: bool = False
    failure: str = FAILURE_FAIL
    network_mode: str = ""
    ipc_mode: str = ""
    backend_options: BackendOptions = Field(default_factory=BackendOptions)
