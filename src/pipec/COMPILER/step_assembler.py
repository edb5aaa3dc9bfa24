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
Assembly of compiled steps from step declarations.
"""
import logging
import posixpath
import uuid
from typing import Dict

from ..MODELS.compilation_context import CompilationContext
from ..MODELS.step import Step, StepType, FAILURE_FAIL
from ..MODELS.step_declaration import StepDeclaration
from ..MANAGERS.environment_manager import EnvironmentManager
from ..MANAGERS.network_manager import NetworkManager
from ..MANAGERS.resource_limit_resolver import ResourceLimitResolver
from ..MANAGERS.secret_resolver import SecretResolver
from ..MANAGERS.volume_manager import VolumeManager
from ..REGISTRY.image_reference import match_image
from ..REGISTRY.registry_resolver import RegistryResolver
from .settings import params_to_env, SettingsTranslationError

logger = logging.getLogger(__name__)


def join_path(*parts: str) -> str:
    """
    Joins slash-separated path segments, skipping empty ones, and cleans the result.
    """
    parts = [p for p in parts if p]
    if not parts:
        return ""
    return posixpath.normpath(posixpath.join(*parts))


class StepAssembler:
    """
    Turns step declarations into compiled steps for one pipeline compile.

    The assembler only reads its context, so ``assemble`` may be called
    concurrently for different declarations.
    """

    def __init__(self, context: CompilationContext):
        """
        Initializes the assembler.

        :param context: The compilation context shared by all steps of the pipeline.
        """
        self.context = context
        self.secrets = SecretResolver(context.secrets, context.event)
        self.network_manager = NetworkManager(context.prefix, context.networks)
        self.volume_manager = VolumeManager(context.prefix, context.base, context.local, context.volumes)

    @property
    def workspace(self) -> str:
        return join_path(self.context.base, self.context.path)

    def step_workdir(self, declaration: StepDeclaration) -> str:
        """
        Resolves the working directory of a step.

        :param declaration: The step declaration.
        :return: The directory verbatim if absolute, else relative to the workspace.
        """
        if posixpath.isabs(declaration.directory):
            return declaration.directory
        return join_path(self.context.base, self.context.path, declaration.directory)

    def environment(self, name: str, declaration: StepDeclaration, detached: bool) -> Dict[str, str]:
        """
        Builds the step environment. Later sources win:
        declaration < global < workspace variables < settings < requested secrets.

        :param name: The unique step name.
        :param declaration: The step declaration.
        :param detached: Whether the step runs detached.
        :return: The merged environment.
        """
        env = EnvironmentManager()
        env.add_layer("declaration", declaration.environment)
        env.add_layer("global", self.context.environment)
        env.add_layer("workspace", {
            "CI_WORKSPACE": self.workspace,
            "CI_STEP_NAME": name,
        })

        if not detached:
            plugin_secrets = SecretResolver.to_string_map(self.secrets.available_secrets(declaration))
            settings_env: Dict[str, str] = {}
            try:
                params_to_env(declaration.settings, settings_env, plugin_secrets)
            except SettingsTranslationError as e:
                logger.error("paramsToEnv failed for step %s: %s", name, e)
            env.add_layer("settings", settings_env)

        env.add_layer("secrets", self.secrets.requested_environment(declaration))
        return env.get_merged_environment()

    def privileged(self, declaration: StepDeclaration) -> bool:
        if declaration.privileged:
            return True
        return match_image(declaration.image, *self.context.escalated) and declaration.is_plugin()

    def assemble(self, name: str, declaration: StepDeclaration, step_type: StepType) -> Step:
        """
        Compiles a single step or service.

        :param name: Unique name for the compiled step, chosen by the caller.
        :param declaration: The step declaration from the manifest.
        :param step_type: Whether the declaration is a step or a service.
        :return: The compiled step.
        """
        step_uuid = str(uuid.uuid4())

        detached = step_type == StepType.SERVICE or declaration.detached

        workingdir = ""
        if not detached or len(declaration.commands) != 0:
            workingdir = self.step_workdir(declaration)

        environment = self.environment(name, declaration, detached)
        auth_config = RegistryResolver.resolve(declaration.image, self.context.registries)
        limits = ResourceLimitResolver.resolve_all(declaration, self.context.reslimit)

        return Step(
            name=name,
            uuid=step_uuid,
            type=step_type,
            alias=declaration.name,
            image=declaration.image,
            pull=declaration.pull,
            detached=detached,
            privileged=self.privileged(declaration),
            working_dir=workingdir,
            environment=environment,
            commands=list(declaration.commands),
            extra_hosts=list(declaration.extra_hosts),
            volumes=self.volume_manager.volumes(declaration.volumes),
            tmpfs=list(declaration.tmpfs),
            devices=list(declaration.devices),
            networks=self.network_manager.connections(declaration.name),
            dns=list(declaration.dns),
            dns_search=list(declaration.dns_search),
            sysctls=dict(declaration.sysctls),
            auth_config=auth_config,
            on_success=declaration.when.includes_status_success(),
            on_failure=declaration.when.includes_status_failure(),
            failure=declaration.failure or FAILURE_FAIL,
            network_mode=declaration.network_mode,
            ipc_mode=declaration.ipc_mode,
            backend_options=declaration.backend_options.model_copy(deep=True),
            **limits,
        )
