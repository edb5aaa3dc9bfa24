"""
Managers for merging step environment variables from multiple sources.
"""
from typing import Dict, List, Mapping, Tuple


class EnvironmentManager:
    """
    Merges environment variables from an ordered list of sources.
    Sources are applied one after another onto an empty mapping,
    so a later source wins on key collision.
    """
    def __init__(self):
        """
        Initializes an empty list of sources.
        """
        self._layers: List[Tuple[str, Dict[str, str]]] = []

    def add_layer(self, name: str, values: Mapping[str, str]) -> "EnvironmentManager":
        """
        Appends a source to the merge order.

        :param name: A label for the source, used to inspect the merge order.
        :param values: The environment variables contributed by the source.
        :return: The manager itself, for chaining.
        """
        self._layers.append((name, dict(values)))
        return self

    @property
    def layer_names(self) -> List[str]:
        return [name for name, _ in self._layers]

    def get_merged_environment(self) -> Dict[str, str]:
        """
        Applies every source in order.

        :return: A new dictionary containing the merged environment variables.
        """
        merged_env: Dict[str, str] = {}
        for _, values in self._layers:
            merged_env.update(values)
        return merged_env
