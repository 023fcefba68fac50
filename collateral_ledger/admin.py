"""
admin.py - Owner-Gated Parameter Updates

Pure validation of rate model parameter changes. The ledger owns the active
RateModelConfig; it is only ever replaced with a config returned from here.
"""

from __future__ import annotations
from dataclasses import fields, replace
from typing import Any, Dict, List, Mapping

from .core import (
    PARAMETER_ALIASES, RateModelConfig,
    ParameterUpdated, Unauthorized,
    validate_identity,
)


def require_owner(owner: str, caller: str) -> None:
    """
    Raises:
        Unauthorized: If caller is not the owner
    """
    if caller != owner:
        raise Unauthorized(f"{caller} is not the owner")


def normalize_parameter_name(name: str) -> str:
    """
    Resolve a parameter name, including legacy aliases.

    Raises:
        ValueError: If the name is not a rate model parameter
    """
    resolved = PARAMETER_ALIASES.get(name, name)
    if resolved not in {f.name for f in fields(RateModelConfig)}:
        raise ValueError(f"Unknown rate model parameter '{name}'")
    return resolved


def compute_parameter_update(
    config: RateModelConfig,
    owner: str,
    caller: str,
    changes: Mapping[str, Any],
) -> RateModelConfig:
    """
    Validate a batch of parameter changes and return the updated config.

    PURE FUNCTION - All inputs explicit. All changes apply together or not at
    all: the whole batch goes through RateModelConfig validation at once.

    Args:
        config: Active configuration
        owner: Current owner identity
        caller: Identity requesting the change
        changes: {parameter_name: new_value}; aliases accepted

    Returns:
        New RateModelConfig

    Raises:
        Unauthorized: If caller is not the owner
        ValueError: On unknown names, duplicates after aliasing, empty
                    changes, or values the config rejects

    Example:
        new_config = compute_parameter_update(
            config, "admin", "admin", {"excess_utilization_rate": 20 * 10**16}
        )
    """
    require_owner(owner, caller)
    if not changes:
        raise ValueError("No parameter changes given")

    resolved: Dict[str, Any] = {}
    for name, value in changes.items():
        key = normalize_parameter_name(name)
        if key in resolved:
            raise ValueError(f"Parameter '{key}' given more than once")
        resolved[key] = value

    return replace(config, **resolved)


def parameter_notifications(old: RateModelConfig, new: RateModelConfig) -> List[ParameterUpdated]:
    """One ParameterUpdated per field that differs, in field order."""
    updates = []
    for f in fields(RateModelConfig):
        old_val = getattr(old, f.name)
        new_val = getattr(new, f.name)
        if old_val != new_val:
            updates.append(ParameterUpdated(f.name, old_val, new_val))
    return updates


def compute_ownership_transfer(owner: str, caller: str, new_owner: str) -> ParameterUpdated:
    """
    Validate an ownership handover.

    Raises:
        Unauthorized: If caller is not the owner
        ValueError: If new_owner is empty
    """
    require_owner(owner, caller)
    validate_identity(new_owner, "new_owner")
    return ParameterUpdated("owner", owner, new_owner)
