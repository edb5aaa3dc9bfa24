# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Loader for compiler configuration files describing a CompilationContext.
"""
import logging
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import dotenv_values

from ..MODELS.compilation_context import CompilationContext, Secret, Registry, ResourceLimit
from ..UTILS.string_interpolation import EnvironmentInterpolator

logger = logging.getLogger(__name__)


class ContextLoader:
    """
    Builds a CompilationContext from a YAML file.

    Values may reference ``${VAR}`` from the process environment,
    optionally extended by a ``.env`` file.
    """
    def __init__(self, variables: Optional[Dict[str, str]] = None, env_file: Optional[str] = None):
        """
        Initializes the loader with the variables used for interpolation.

        :param variables: Variables for interpolation. Defaults to the process environment.
        :param env_file: Optional .env file whose values override ``variables``.
        """
        self.variables = dict(os.environ) if variables is None else dict(variables)
        if env_file:
            if not os.path.exists(env_file):
                raise FileNotFoundError(env_file)
            for key, value in dotenv_values(env_file).items():
                if value is not None:
                    self.variables[key] = value

    def load(self, config_path: str) -> CompilationContext:
        """
        Loads a context from a path.

        :param config_path: Path to the YAML file.
        :return: The compilation context.
        """
        with open(config_path, 'r') as f:
            content = f.read()
        return self.load_from_string(content)

    def load_from_string(self, content: str) -> CompilationContext:
        """
        Loads a context from YAML content.

        :param content: YAML content.
        :return: The compilation context.
        """
        data = yaml.safe_load(content) or {}
        if not isinstance(data, dict):
            raise ValueError("Compiler configuration must be a mapping")
        try:
            data = EnvironmentInterpolator.interpolate_tree(data, self.variables)
        except KeyError as e:
            raise ValueError(f"Cannot interpolate compiler configuration: {e}") from e
        return self._build(data)

    def _build(self, data: Dict[str, Any]) -> CompilationContext:
        secrets = {}
        for spec in data.get('secrets') or []:
            secret = Secret(**{**spec, 'value': '' if spec.get('value') is None else str(spec['value'])})
            secrets[secret.name.lower()] = secret

        registries = [Registry(**spec) for spec in data.get('registries') or []]
        reslimit = ResourceLimit(**(data.get('resource_limits') or {}))

        logger.debug("Loaded %d secrets and %d registries", len(secrets), len(registries))

        return CompilationContext(
            prefix=data.get('prefix', ''),
            base=data.get('base', '/ci'),
            path=data.get('path', ''),
            local=bool(data.get('local', False)),
            volumes=self._to_list(data.get('volumes')),
            networks=self._to_list(data.get('networks')),
            environment={k: str(v) for k, v in (data.get('environment') or {}).items()},
            secrets=secrets,
            registries=registries,
            escalated=self._to_list(data.get('escalated')),
            reslimit=reslimit,
            event=data.get('event'),
        )

    @staticmethod
    def _to_list(val: Any):
        if val is None:
            return []
        if isinstance(val, str):
            return [val]
        return list(val)
