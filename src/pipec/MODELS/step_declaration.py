"""
Models for user-authored step and service declarations, including volumes,
requested secrets, execution conditions and backend-specific options.
"""
from typing import List, Dict, Optional, Any
from pydantic import BaseModel, Field


class VolumeMount(BaseModel):
    """
    Defines a mapping between a source (host path or named volume) and a path
    inside the step container.
    """
    source: str = ""
    target: str
    access_mode: str = ""

    @classmethod
    def parse(cls, spec: str) -> "VolumeMount":
        """
        Parses a volume from its short string form.

        :param spec: Either ``target``, ``source:target`` or ``source:target:mode``.
        :return: A VolumeMount instance.
        """
        parts = spec.split(':')
        if len(parts) == 1:
            return cls(target=parts[0])
        if len(parts) == 2:
            return cls(source=parts[0], target=parts[1])
        if len(parts) == 3:
            return cls(source=parts[0], target=parts[1], access_mode=parts[2])
        raise ValueError(f"Invalid volume specification: {spec}")

    def __str__(self) -> str:
        if not self.source:
            return self.target
        if not self.access_mode:
            return f"{self.source}:{self.target}"
        return f"{self.source}:{self.target}:{self.access_mode}"


class SecretRequest(BaseModel):
    """
    A named secret the step wants exposed as an environment variable.
    """
    source: str
    target: str


class Constraint(BaseModel):
    """
    A single "when" block. Only the status filter matters at this layer.
    """
    status: List[str] = []


class WhenConstraints(BaseModel):
    """
    The list of conditions that gate a step on the pipeline status.
    """
    constraints: List[Constraint] = []

    def includes_status_success(self) -> bool:
        # no constraints, or any constraint without a status filter, runs on success
        if not self.constraints:
            return True
        for constraint in self.constraints:
            if not constraint.status or "success" in constraint.status:
                return True
        return False

    def includes_status_failure(self) -> bool:
        return any("failure" in c.status for c in self.constraints)


class Toleration(BaseModel):
    """
    A Kubernetes toleration attached to the pod running the step.
    """
    key: str = ""
    operator: str = ""
    value: str = ""
    effect: str = ""
    toleration_seconds: Optional[int] = None


class Resources(BaseModel):
    requests: Dict[str, str] = {}
    limits: Dict[str, str] = {}


class KubernetesBackendOptions(BaseModel):
    """
    Options only understood by the Kubernetes backend.
    """
    resources: Resources = Field(default_factory=Resources)
    service_account_name: str = ""
    node_selector: Dict[str, str] = {}
    tolerations: List[Toleration] = []


class BackendOptions(BaseModel):
    kubernetes: KubernetesBackendOptions = Field(default_factory=KubernetesBackendOptions)


class StepDeclaration(BaseModel):
    """
    The full declaration of a single step or service as written in a pipeline manifest.
    """
    name: str
    image: str = ""
    pull: bool = False

    # Execution
    commands: List[str] = []
    directory: str = ""
    detached: bool = False
    privileged: bool = False
    failure: str = ""
    when: WhenConstraints = Field(default_factory=WhenConstraints)

    # Environment
    environment: Dict[str, str] = {}
    settings: Dict[str, Any] = {}
    secrets: List[SecretRequest] = []

    # Networking
    network_mode: str = ""
    ipc_mode: str = ""
    extra_hosts: List[str] = []
    dns: List[str] = []
    dns_search: List[str] = []

    # Storage and devices
    volumes: List[VolumeMount] = []
    tmpfs: List[str] = []
    devices: List[str] = []
    sysctls: Dict[str, str] = {}

    # Resources
    mem_swap_limit: int = 0
    mem_limit: int = 0
    shm_size: int = 0
    cpu_quota: int = 0
    cpu_shares: int = 0
    cpu_set: str = ""

    backend_options: BackendOptions = Field(default_factory=BackendOptions)

    def is_plugin(self) -> bool:
        """Plugin-style steps are configured through settings instead of commands."""
        return len(self.commands) == 0
