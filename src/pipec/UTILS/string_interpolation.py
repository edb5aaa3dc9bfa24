"""
Utilities for string interpolation using environment variables.
"""
import re
from typing import Any, Mapping


class EnvironmentInterpolator:
    """
    Utility for interpolating environment variables in configuration values.
    Supports ${VAR}, ${VAR:-default}, ${VAR:+value} and $$ as a literal dollar.
    """
    # Group 1: escaped $$, Group 2: VAR name, Group 3: - or +, Group 4: alternative value
    PATTERN = re.compile(r'(\$\$)|\$\{([^}:]+)(?::(-|\+)([^}]*))?\}')

    @classmethod
    def interpolate(cls, template: str, context: Mapping[str, str]) -> str:
        """
        Interpolates environment variables in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: The environment variables context.
        :return: The interpolated string.
        :raises KeyError: If a variable is not found and no default is provided.
        """
        def replace(match):
            if match.group(1):
                return '$'
            var_name = match.group(2)
            modifier = match.group(3)
            alt_value = match.group(4)

            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            if modifier == '+':
                return alt_value if value else ''
            if value is None:
                raise KeyError(f"Variable {var_name} not found in context")
            return value

        return cls.PATTERN.sub(replace, template)

    @classmethod
    def interpolate_tree(cls, data: Any, context: Mapping[str, str]) -> Any:
        """
        Interpolates every string found in a parsed YAML document.
        Mapping keys are left untouched.
        """
        if isinstance(data, str):
            return cls.interpolate(data, context)
        if isinstance(data, dict):
            return {k: cls.interpolate_tree(v, context) for k, v in data.items()}
        if isinstance(data, list):
            return [cls.interpolate_tree(v, context) for v in data]
        return data
