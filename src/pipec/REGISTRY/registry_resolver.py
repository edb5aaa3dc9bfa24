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
Selection of registry credentials for a step image.
"""

from typing import Iterable

from ..MODELS.compilation_context import Registry
from ..MODELS.step import Auth
from .image_reference import match_hostname


class RegistryResolver:
    """
    Picks the credentials of the first registry hosting an image.
    """

    @staticmethod
    def resolve(image: str, registries: Iterable[Registry]) -> Auth:
        """
        Resolve credentials for an image.

        Args:
            image: The image reference the step will pull.
            registries: Known registries, in declared order.

        Returns:
            Credentials of the first matching registry, or empty credentials.
        """
        for registry in registries:
            if match_hostname(image, registry.hostname):
                return Auth(
                    username=registry.username,
                    password=registry.password,
                    email=registry.email,
                )
        return Auth()
