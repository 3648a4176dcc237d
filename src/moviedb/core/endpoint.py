"""Endpoint template resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping

from .errors import InvalidParameters
from .models import Params

PLACEHOLDER = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")

# Resolves to the account owning the active session.
CURRENT_ACCOUNT = "{account_id}"
IDENTITY_PLACEHOLDER = "id"


@dataclass(frozen=True, slots=True)
class ResolvedEndpoint:
    """Concrete path plus the parameters left over for the query."""

    path: str
    consumed: FrozenSet[str] = frozenset()
    query: Dict[str, Any] = field(default_factory=dict)


def placeholders(template: str) -> List[str]:
    """Return placeholder names in the order they appear."""

    return PLACEHOLDER.findall(template)


def resolve_endpoint(template: str, params: Params = None) -> ResolvedEndpoint:
    """Fill ``:name`` placeholders in ``template`` from ``params``.

    A scalar fills the single placeholder of a template. A mapping fills
    every placeholder whose key it carries and the rest of its keys are
    returned as query parameters. A string against a template without
    placeholders is treated as a raw query string. Placeholders that stay
    unresolved raise :class:`InvalidParameters`.
    """

    names = placeholders(template)

    if params is None or (isinstance(params, (str, Mapping)) and not params):
        _ensure_resolved(template, names, frozenset())
        return ResolvedEndpoint(path=template)

    if isinstance(params, Mapping):
        consumed = frozenset(name for name in names if name in params)
        _ensure_resolved(template, names, consumed)
        path = PLACEHOLDER.sub(lambda match: str(params[match.group(1)]), template)
        query = {key: value for key, value in params.items() if key not in consumed}
        return ResolvedEndpoint(path=path, consumed=consumed, query=query)

    if isinstance(params, str) and not names:
        separator = "" if params.startswith("?") else "?"
        return ResolvedEndpoint(path=f"{template}{separator}{params}")

    if isinstance(params, (str, int, float)):
        if len(names) != 1:
            raise InvalidParameters(
                f"Endpoint {template!r} has {len(names)} placeholders; a single value cannot fill them"
            )
        path = PLACEHOLDER.sub(lambda _: str(params), template, count=1)
        return ResolvedEndpoint(path=path, consumed=frozenset(names))

    raise InvalidParameters(f"Unsupported parameters for {template!r}: {type(params).__name__}")


def _ensure_resolved(template: str, names: List[str], consumed: FrozenSet[str]) -> None:
    missing = [name for name in names if name not in consumed]
    if missing:
        raise InvalidParameters(f"Unresolved placeholder(s) in {template!r}: {', '.join(missing)}")
