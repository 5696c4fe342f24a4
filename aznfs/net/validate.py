"""IPv4 address and prefix validation."""

import re
from typing import TYPE_CHECKING

from aznfs.lib.process import command_succeeds

if TYPE_CHECKING:
    from aznfs.core.context import Context

# `ip route` treats "10.10" as 10.10.0.0, so a full address also needs
# this coarse shape filter.
IPV4_ADDRESS_RE = re.compile(r"([0-9]{1,3}\.){3}[0-9]{1,3}")
IPV4_PREFIX_RE = re.compile(r"[0-9]{1,3}(\.[0-9]{1,3}){0,3}")

# Matched on the literal text. `ip` reads a leading-zero octet as octal, so
# "010.0.0.1" is 8.0.0.1 and must not count as 10/8.
PRIVATE_IP_RES = (
    re.compile(r"10\."),
    re.compile(r"172\.(1[6-9]|2[0-9]|3[0-1])\."),
    re.compile(r"192\.168\."),
)


def _octets_in_range(s: str) -> bool:
    return all(int(octet) <= 255 for octet in s.split("."))


def is_valid_ipv4_address(
    s: str,
    context: "Context | None" = None,
    timeout: int | None = None,
) -> bool:
    """
    Check if the given string is a valid IPv4 address.

    Both the dotted-quad shape and the routing table probe must accept it.
    """
    if not isinstance(s, str) or not IPV4_ADDRESS_RE.fullmatch(s):
        return False
    if not _octets_in_range(s):
        return False
    return command_succeeds(
        ["ip", "-4", "route", "show", "match", s], context=context, timeout=timeout
    )


def is_valid_ipv4_prefix(
    s: str,
    context: "Context | None" = None,
    timeout: int | None = None,
) -> bool:
    """
    Check if the given string is a valid IPv4 prefix.

    10, 10.10, 10.10.10 and 10.10.10.10 are valid prefixes, while
    1000, 10.256 and 10. are not.
    """
    if not isinstance(s, str) or not IPV4_PREFIX_RE.fullmatch(s):
        return False
    if not _octets_in_range(s):
        return False
    return command_succeeds(
        ["ip", "-4", "route", "get", "fibmatch", s], context=context, timeout=timeout
    )


def is_private_ip(
    ip: str,
    context: "Context | None" = None,
    timeout: int | None = None,
) -> bool:
    """Check if ip is valid and inside 10/8, 172.16/12 or 192.168/16."""
    if not is_valid_ipv4_address(ip, context=context, timeout=timeout):
        return False

    return any(pattern.match(ip) for pattern in PRIVATE_IP_RES)
