"""Policy configuration and enforcement helpers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, get_args

from provenv.errors import PolicyError, ValidationError

MutableRefPolicy = Literal["warn", "error", "allow"]
NetworkMode = Literal["online", "offline"]

DEFAULT_HOST_TRIPLE = "x86_64-unknown-linux-gnu"


@dataclass(frozen=True, slots=True)
class Policy:
    mutable_ref_policy: MutableRefPolicy = "warn"
    require_integrity: bool = True
    network_mode: NetworkMode = "online"
    inherit_env: bool = False
    host_triple: str = DEFAULT_HOST_TRIPLE


def policy_from_mapping(raw: Mapping[str, Any]) -> Policy:
    """Build a :class:`Policy` from a ``[policy]`` table."""
    known = set(Policy.__dataclass_fields__)
    values = {key.replace("-", "_"): value for key, value in raw.items()}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValidationError(
            "Unknown policy settings.",
            hint=f"Supported settings: {', '.join(sorted(known))}.",
            context={"settings": ", ".join(unknown)},
        )
    mutable_ref = values.get("mutable_ref_policy", "warn")
    if mutable_ref not in get_args(MutableRefPolicy):
        raise ValidationError(f"Unsupported mutable_ref_policy value: {mutable_ref}")
    network_mode = values.get("network_mode", "online")
    if network_mode not in get_args(NetworkMode):
        raise ValidationError(f"Unsupported network_mode value: {network_mode}")
    for flag in ("require_integrity", "inherit_env"):
        if flag in values and not isinstance(values[flag], bool):
            raise ValidationError(f"Policy setting `{flag}` must be a boolean.")
    host_triple = values.get("host_triple", DEFAULT_HOST_TRIPLE)
    if not isinstance(host_triple, str) or not host_triple:
        raise ValidationError("Policy setting `host_triple` must be a non-empty string.")
    return Policy(
        mutable_ref_policy=mutable_ref,
        require_integrity=values.get("require_integrity", True),
        network_mode=network_mode,
        inherit_env=values.get("inherit_env", False),
        host_triple=host_triple,
    )


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if policy.network_mode == "offline":
        raise PolicyError(
            "Network operations are disabled by policy.",
            hint="Switch policy.network_mode to 'online' for this operation.",
            context={"operation": operation},
        )
