"""
Volume ordering for compiled steps, including the shared workspace volume.
"""
from typing import List, Sequence

from ..MODELS.step_declaration import VolumeMount
from .network_manager import default_network_name


def workspace_volume(prefix: str, base: str) -> str:
    """
    Bind spec of the volume holding the pipeline workspace.
    """
    return f"{default_network_name(prefix)}:{base}"


class VolumeManager:
    """
    Builds the ordered mount list of a step.
    """
    def __init__(self, prefix: str, base: str, local: bool = False, global_volumes: Sequence[str] = ()):
        """
        Initializes the volume manager.

        :param prefix: The pipeline name prefix.
        :param base: The workspace base directory inside the step.
        :param local: In local mode the workspace is the host directory and no volume is injected.
        :param global_volumes: Volumes mounted into every step.
        """
        self.prefix = prefix
        self.base = base
        self.local = local
        self.global_volumes = list(global_volumes)

    def volumes(self, mounts: Sequence[VolumeMount]) -> List[str]:
        """
        Returns the workspace volume, then the global volumes, then the step's
        own volumes. The order is the mount order applied by the backend.

        :param mounts: Volumes declared on the step.
        :return: Mount specs in order, without de-duplication.
        """
        volumes = []
        if not self.local:
            volumes.append(workspace_volume(self.prefix, self.base))
        volumes.extend(self.global_volumes)
        for mount in mounts:
            volumes.append(str(mount))
        return volumes
