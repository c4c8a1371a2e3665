"""Hook construction keyed by the configured hook name.

The set of hooks is closed and resolved once at startup; there is no
runtime registration.

  "passkey approval" → PasskeyApprovalHook
  "peer limit"       → PeerLimitHook
  "traffic push"     → TrafficPushHook
"""

from __future__ import annotations

from typing import Callable

from passgate.approval.hook import PasskeyApprovalHook
from passgate.config import (
    PASSKEY_APPROVAL_HOOK,
    PEER_LIMIT_HOOK,
    TRAFFIC_PUSH_HOOK,
    HookSpec,
    PasskeyApprovalConfig,
    PeerLimitConfig,
    TrafficPushConfig,
)
from passgate.errors import HookConfigError
from passgate.hooks.chain import HookChain
from passgate.hooks.peerlimit import PeerLimitHook
from passgate.hooks.protocol import Hook
from passgate.hooks.trafficpush import TrafficPushHook


def _passkey_approval(options: dict) -> Hook:
    return PasskeyApprovalHook.from_config(PasskeyApprovalConfig.from_dict(options))


def _peer_limit(options: dict) -> Hook:
    return PeerLimitHook.from_config(PeerLimitConfig.from_dict(options))


def _traffic_push(options: dict) -> Hook:
    return TrafficPushHook.from_config(TrafficPushConfig.from_dict(options))


HOOK_BUILDERS: dict[str, Callable[[dict], Hook]] = {
    PASSKEY_APPROVAL_HOOK: _passkey_approval,
    PEER_LIMIT_HOOK: _peer_limit,
    TRAFFIC_PUSH_HOOK: _traffic_push,
}


def create_hook(spec: HookSpec) -> Hook:
    """Build one hook from its config entry.

    Raises:
        HookConfigError: unknown hook name or invalid options.
    """
    builder = HOOK_BUILDERS.get(spec.name)
    if builder is None:
        raise HookConfigError(
            f"unknown hook {spec.name!r}; available: {sorted(HOOK_BUILDERS)}"
        )
    try:
        return builder(spec.options)
    except HookConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise HookConfigError(f"invalid options for hook {spec.name!r}: {exc}") from exc


def create_hook_chain(specs: list[HookSpec]) -> HookChain:
    return HookChain([create_hook(spec) for spec in specs])
