"""
Network naming for compiled steps.
"""
from typing import List, Sequence

from ..MODELS.step import Conn


def default_network_name(prefix: str) -> str:
    """
    Name of the network every step of a pipeline joins.
    """
    return f"{prefix}_default"


class NetworkManager:
    """
    Builds the network attachments of a step.
    """
    def __init__(self, prefix: str, global_networks: Sequence[str] = ()):
        """
        Initializes the network manager.

        :param prefix: The pipeline name prefix.
        :param global_networks: Networks every step is attached to.
        """
        self.prefix = prefix
        self.global_networks = list(global_networks)

    def connections(self, alias: str) -> List[Conn]:
        """
        Returns the default network, reachable under the step alias,
        followed by the global networks without aliases.

        :param alias: The declaration name the step is reachable under.
        :return: Ordered network attachments.
        """
        networks = [Conn(name=default_network_name(self.prefix), aliases=[alias])]
        for network in self.global_networks:
            networks.append(Conn(name=network))
        return networks
