"""Policy configuration and enforcement helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from flakecompat.errors import PolicyError

MutableRefPolicy = Literal["warn", "error", "allow"]
NetworkMode = Literal["online", "offline"]


@dataclass(frozen=True, slots=True)
class Policy:
    network_mode: NetworkMode = "online"
    require_integrity: bool = False
    mutable_ref_policy: MutableRefPolicy = "allow"


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if policy.network_mode == "offline":
        raise PolicyError(
            "Network operations are disabled by policy.",
            hint="Switch policy.network_mode to 'online' for this operation.",
            context={"operation": operation},
        )


def ensure_integrity(*, policy: Policy, operation: str, nar_hash: str | None, locator: str) -> None:
    if nar_hash is None and policy.require_integrity:
        raise PolicyError(
            "Source has no narHash but integrity is required by policy.",
            hint="Pin a narHash in the lock file or relax policy.require_integrity.",
            context={"operation": operation, "locator": locator},
        )
