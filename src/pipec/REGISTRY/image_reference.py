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
Image reference parsing and matching.
Parses references like 'alpine:3.19' or 'ghcr.io/org/tool@sha256:...' so that
images can be compared against escalation patterns and registry hostnames.
"""

from typing import Optional
from dataclasses import dataclass


@dataclass(frozen=True)
class ImageReference:
    """
    Parsed container image reference.

    Examples:
        - alpine -> docker.io/library/alpine:latest
        - alpine:3.19 -> docker.io/library/alpine:3.19
        - org/plugin:v1 -> docker.io/org/plugin:v1
        - ghcr.io/org/tool@sha256:abc123... -> ghcr.io/org/tool@sha256:abc123...
    """

    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    DEFAULT_REGISTRY = "docker.io"
    LEGACY_REGISTRY = "index.docker.io"
    DEFAULT_TAG = "latest"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """
        Parse an image reference string.

        Args:
            reference: Image reference string (e.g., 'alpine:3.19', 'org/plugin:v1')

        Returns:
            Parsed ImageReference object.
        """
        reference = reference.strip()
        if not reference:
            raise ValueError("Empty image reference")

        digest = None
        if "@" in reference:
            reference, digest = reference.rsplit("@", 1)
            if not digest:
                raise ValueError("Empty digest in image reference")

        tag = None
        last_colon = reference.rfind(":")
        if last_colon != -1:
            after_colon = reference[last_colon + 1 :]
            # a colon followed by a path is a registry port, not a tag
            if "/" not in after_colon:
                tag = after_colon
                reference = reference[:last_colon]
                if not tag:
                    raise ValueError("Empty tag in image reference")

        parts = reference.split("/")
        if any(not part for part in parts):
            raise ValueError(f"Invalid image reference: {reference}")

        first_part = parts[0]
        if len(parts) > 1 and ("." in first_part or ":" in first_part or first_part == "localhost"):
            registry = first_part
            repository = "/".join(parts[1:])
        else:
            registry = cls.DEFAULT_REGISTRY
            repository = reference

        if registry == cls.LEGACY_REGISTRY:
            registry = cls.DEFAULT_REGISTRY
        if registry == cls.DEFAULT_REGISTRY and "/" not in repository:
            repository = f"library/{repository}"

        if not tag and not digest:
            tag = cls.DEFAULT_TAG

        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    @property
    def full_name(self) -> str:
        """Get full image name with registry."""
        name = f"{self.registry}/{self.repository}"
        if self.digest:
            return f"{name}@{self.digest}"
        if self.tag:
            return f"{name}:{self.tag}"
        return name

    @property
    def familiar_name(self) -> str:
        """Get the image name without tag, digest or default registry."""
        if self.registry == self.DEFAULT_REGISTRY:
            repo = self.repository
            if repo.startswith("library/"):
                repo = repo[8:]
            return repo
        return f"{self.registry}/{self.repository}"

    def __str__(self) -> str:
        return self.full_name


def _familiar(image: str) -> Optional[str]:
    try:
        return ImageReference.parse(image).familiar_name
    except ValueError:
        return None


def match_image(image: str, *patterns: str) -> bool:
    """
    Checks whether an image matches any of the given image patterns,
    ignoring tags, digests and the default registry.

    :param image: The image reference to test.
    :param patterns: Image references to compare against.
    :return: True on the first match.
    """
    name = _familiar(image)
    if name is None:
        return False
    for pattern in patterns:
        if _familiar(pattern) == name:
            return True
    return False


def match_hostname(image: str, hostname: str) -> bool:
    """
    Checks whether an image is hosted on the given registry hostname.
    """
    try:
        ref = ImageReference.parse(image)
    except ValueError:
        return False
    if hostname == ImageReference.LEGACY_REGISTRY:
        hostname = ImageReference.DEFAULT_REGISTRY
    return ref.registry == hostname
