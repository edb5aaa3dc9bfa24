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
Translation of plugin settings into environment variables.

A setting ``build-args.target: x`` becomes ``PLUGIN_BUILD_ARGS_TARGET=x``.
Scalar lists are joined with commas, anything structured is JSON encoded,
and ``{from_secret: name}`` is replaced with the secret's value.
"""
import json
from typing import Any, Mapping, MutableMapping

SECRET_KEY = "from_secret"
ENV_PREFIX = "PLUGIN_"


class SettingsTranslationError(ValueError):
    """
    Raised when a setting cannot be turned into an environment variable.
    """
    def __init__(self, key: str, message: str):
        super().__init__(f"setting '{key}': {message}")
        self.key = key


def sanitize_key(key: str) -> str:
    """
    Builds the environment variable name for a setting key.
    """
    return ENV_PREFIX + key.replace(".", "_").replace("-", "_").upper()


def _is_secret_ref(value: Any) -> bool:
    return isinstance(value, dict) and len(value) == 1 and SECRET_KEY in value


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, bool, int, float))


def _resolve(key: str, value: Any, secrets: Mapping[str, str]) -> Any:
    if _is_secret_ref(value):
        name = str(value[SECRET_KEY]).lower()
        if name not in secrets:
            raise SettingsTranslationError(key, f"secret '{name}' not found or not allowed")
        return secrets[name]
    if isinstance(value, dict):
        return {k: _resolve(key, v, secrets) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(key, v, secrets) for v in value]
    return value


def _encode(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list) and all(_is_scalar(v) for v in value):
        return ",".join(_encode(v) for v in value)
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def params_to_env(settings: Mapping[str, Any],
                  environment: MutableMapping[str, str],
                  secrets: Mapping[str, str]) -> None:
    """
    Writes one environment variable per setting, in declaration order.

    :param settings: The plugin settings of a step.
    :param environment: The mapping to write into.
    :param secrets: Values of the secrets the step may use, keyed by lower-case name.
    :raises SettingsTranslationError: On the first setting that cannot be translated.
        Entries written before the failure are kept.
    """
    for key, value in settings.items():
        resolved = _resolve(key, value, secrets)
        try:
            encoded = _encode(resolved)
        except (TypeError, ValueError) as e:
            raise SettingsTranslationError(key, f"cannot encode value: {e}") from e
        environment[sanitize_key(key)] = encoded
