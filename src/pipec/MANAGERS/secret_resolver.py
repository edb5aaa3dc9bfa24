"""
Scoping of pipeline secrets to individual step declarations.
"""
from typing import Dict, Mapping, Optional, Tuple

from ..MODELS.compilation_context import Secret
from ..MODELS.step_declaration import StepDeclaration


class SecretResolver:
    """
    Resolves which secrets a declaration may see and which ones it asked for.
    """
    def __init__(self, secrets: Mapping[str, Secret], event: Optional[str] = None):
        """
        Initializes the resolver.

        :param secrets: All secrets visible to the compiler, keyed by lower-case name.
        :param event: The pipeline event being compiled, used for event-scoped secrets.
        """
        self.secrets = secrets
        self.event = event

    def available_secrets(self, declaration: StepDeclaration) -> Dict[str, Secret]:
        """
        Filters the secrets down to those in scope for a declaration.

        :param declaration: The step declaration.
        :return: Secrets the declaration may use, keyed by name.
        """
        return {
            name: secret
            for name, secret in self.secrets.items()
            if secret.available(declaration, self.event)
        }

    def lookup(self, name: str) -> Tuple[Optional[Secret], bool]:
        """
        Looks a secret up by name. Callers pass the lower-cased name.

        :param name: The secret name.
        :return: The secret and whether it was found.
        """
        secret = self.secrets.get(name)
        return secret, secret is not None

    def requested_environment(self, declaration: StepDeclaration) -> Dict[str, str]:
        """
        Builds the environment entries for the secrets a declaration requested.
        Unknown or out-of-scope secrets are skipped.

        :param declaration: The step declaration.
        :return: Mapping of upper-cased target names to secret values.
        """
        env = {}
        for requested in declaration.secrets:
            secret, found = self.lookup(requested.source.lower())
            if found and secret.available(declaration, self.event):
                env[requested.target.upper()] = secret.value
        return env

    @staticmethod
    def to_string_map(secrets: Mapping[str, Secret]) -> Dict[str, str]:
        """
        Flattens secrets into a name to value mapping.
        """
        return {name: secret.value for name, secret in secrets.items()}
