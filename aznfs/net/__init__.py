"""Address validation, resolution and NAT rules."""

from aznfs.net.nat import (
    IptablesController,
    NatError,
    NatRule,
    NatRuleManager,
    NatTableController,
    RuleInstallError,
    RuleRemoveError,
)
from aznfs.net.resolver import (
    AmbiguityError,
    FatalResolutionError,
    HostCommandResolver,
    ResolutionError,
    Resolver,
    resolve_ipv4,
)
from aznfs.net.validate import is_private_ip, is_valid_ipv4_address, is_valid_ipv4_prefix

__all__ = [
    "AmbiguityError",
    "FatalResolutionError",
    "HostCommandResolver",
    "IptablesController",
    "NatError",
    "NatRule",
    "NatRuleManager",
    "NatTableController",
    "ResolutionError",
    "Resolver",
    "RuleInstallError",
    "RuleRemoveError",
    "is_private_ip",
    "is_valid_ipv4_address",
    "is_valid_ipv4_prefix",
    "resolve_ipv4",
]
