"""Resolution of ``${name}`` expressions in configuration values.

Templated values are resolved per invocation, first against the attributes of
the inbound work unit and then against the controller's variable registry.
"""

import re
from typing import Mapping, Optional

from table_fetch.common.exceptions import TemplateResolutionError

TEMPLATE_PATTERN = re.compile(r"\$\{\s*([^}\s]+)\s*\}")


def is_templated(value: Optional[str]) -> bool:
    """Return True when ``value`` contains at least one ``${...}`` expression."""
    return bool(value) and TEMPLATE_PATTERN.search(value) is not None


def resolve_template(
    value: str,
    attributes: Optional[Mapping[str, str]] = None,
    variables: Optional[Mapping[str, str]] = None,
) -> str:
    """Substitute every ``${name}`` in ``value``.

    Args:
        value: The configured value, possibly containing expressions.
        attributes: Attributes of the inbound work unit, consulted first.
        variables: Registry variables, consulted when the attribute is absent.

    Returns:
        str: The value with all expressions replaced.

    Raises:
        TemplateResolutionError: If a referenced name is in neither mapping.

    Example:
        >>> resolve_template("${schema}.ORDERS", {"schema": "SALES"})
        'SALES.ORDERS'
    """
    attributes = attributes or {}
    variables = variables or {}

    def _substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in attributes:
            return str(attributes[name])
        if name in variables:
            return str(variables[name])
        raise TemplateResolutionError(value, name)

    return TEMPLATE_PATTERN.sub(_substitute, value)
