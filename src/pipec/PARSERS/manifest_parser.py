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
Parser mapping pipeline manifest YAML onto step declarations.
"""
import yaml
from typing import Dict, Any, List

from ..MODELS.manifest import Manifest
from ..MODELS.step_declaration import (
    StepDeclaration, VolumeMount, SecretRequest, WhenConstraints, Constraint,
    BackendOptions, KubernetesBackendOptions, Resources, Toleration,
)

PASSTHROUGH_FIELDS = (
    'image', 'pull', 'directory', 'detached', 'privileged', 'failure',
    'network_mode', 'ipc_mode', 'settings',
    'mem_swap_limit', 'mem_limit', 'shm_size', 'cpu_quota', 'cpu_shares', 'cpu_set',
)

LIST_FIELDS = ('commands', 'extra_hosts', 'tmpfs', 'devices', 'dns', 'dns_search')


class ManifestParser:
    """
    Parser for pipeline manifests with ``steps`` and ``services`` sections.
    """
    def parse(self, manifest_path: str) -> Manifest:
        """
        Parses a manifest from a path.

        :param manifest_path: Path to the manifest file.
        :return: Parsed manifest.
        """
        with open(manifest_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> Manifest:
        """
        Parses a manifest from a string.

        :param content: YAML content of the manifest.
        :return: Parsed manifest.
        """
        data = yaml.safe_load(content)
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("Pipeline manifest must be a mapping")

        return Manifest(
            services=self._parse_section(data.get('services')),
            steps=self._parse_section(data.get('steps')),
        )

    def _parse_section(self, section: Any) -> List[StepDeclaration]:
        """
        Parses a ``steps`` or ``services`` section, given either as a mapping
        of names to blocks or as a list of blocks carrying a ``name``.
        """
        if not section:
            return []
        if isinstance(section, dict):
            return [self.parse_declaration(name, spec or {}) for name, spec in section.items()]
        declarations = []
        for spec in section:
            if 'name' not in spec:
                raise ValueError("Step in list form requires a name")
            declarations.append(self.parse_declaration(spec['name'], spec))
        return declarations

    def parse_declaration(self, name: str, spec: Dict[str, Any]) -> StepDeclaration:
        """
        Parses a single step block.

        :param name: The name of the step.
        :param spec: The step block.
        :return: A StepDeclaration instance.
        """
        fields: Dict[str, Any] = {k: spec[k] for k in PASSTHROUGH_FIELDS if k in spec}
        for key in LIST_FIELDS:
            if key in spec:
                fields[key] = self._to_list(spec[key])

        if 'environment' in spec:
            fields['environment'] = self._to_dict(spec['environment'])
        if 'sysctls' in spec:
            fields['sysctls'] = self._to_dict(spec['sysctls'])

        volumes = []
        for v in spec.get('volumes') or []:
            if isinstance(v, str):
                volumes.append(VolumeMount.parse(v))
            elif isinstance(v, dict):
                volumes.append(VolumeMount(**v))
        fields['volumes'] = volumes

        secrets = []
        for s in spec.get('secrets') or []:
            if isinstance(s, str):
                secrets.append(SecretRequest(source=s, target=s))
            elif isinstance(s, dict):
                secrets.append(SecretRequest(source=s['source'], target=s.get('target', s['source'])))
        fields['secrets'] = secrets

        if 'when' in spec:
            fields['when'] = self._parse_when(spec['when'])
        if 'backend_options' in spec:
            fields['backend_options'] = self._parse_backend_options(spec['backend_options'] or {})

        return StepDeclaration(name=name, **fields)

    def _parse_when(self, when: Any) -> WhenConstraints:
        if not when:
            return WhenConstraints()
        blocks = when if isinstance(when, list) else [when]
        return WhenConstraints(constraints=[
            Constraint(status=self._to_list(block.get('status'))) for block in blocks
        ])

    def _parse_backend_options(self, options: Dict[str, Any]) -> BackendOptions:
        k8s = options.get('kubernetes') or {}
        resources = k8s.get('resources') or {}
        tolerations = []
        for t in k8s.get('tolerations') or []:
            tolerations.append(Toleration(
                key=t.get('key', ''),
                operator=t.get('operator', ''),
                value=t.get('value', ''),
                effect=t.get('effect', ''),
                toleration_seconds=t.get('toleration_seconds', t.get('tolerationSeconds')),
            ))
        return BackendOptions(kubernetes=KubernetesBackendOptions(
            resources=Resources(
                requests=self._to_dict(resources.get('requests')),
                limits=self._to_dict(resources.get('limits')),
            ),
            service_account_name=k8s.get('service_account_name', k8s.get('serviceAccountName', '')),
            node_selector=self._to_dict(k8s.get('node_selector', k8s.get('nodeSelector'))),
            tolerations=tolerations,
        ))

    def _to_list(self, val: Any) -> List[str]:
        """
        Helper to ensure a value is a list of strings.

        :param val: The value to convert.
        :return: A list of strings.
        """
        if val is None:
            return []
        if isinstance(val, str):
            return [val]
        return [str(v) for v in val]

    def _to_dict(self, val: Any) -> Dict[str, str]:
        """
        Helper accepting either a mapping or a list of ``KEY=VALUE`` strings.
        """
        if not val:
            return {}
        if isinstance(val, dict):
            return {str(k): '' if v is None else str(v) for k, v in val.items()}
        result = {}
        for entry in val:
            if '=' in entry:
                k, v = entry.split('=', 1)
                result[k] = v
        return result
