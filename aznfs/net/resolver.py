"""Blob endpoint FQDN to IPv4 resolution."""

import subprocess
from typing import TYPE_CHECKING

from aznfs.net.validate import is_valid_ipv4_address

if TYPE_CHECKING:
    from aznfs.core.context import Context
    from aznfs.core.logging import Logger


class ResolutionError(Exception):
    """The DNS lookup itself failed."""

    pass


class AmbiguityError(ResolutionError):
    """The lookup did not return exactly one address."""

    def __init__(self, hostname: str, count: int):
        super().__init__(f"host returned {count} address(es) for {hostname}, expected 1")
        self.hostname = hostname
        self.count = count


class FatalResolutionError(ResolutionError):
    """The resolver returned something that is not an IPv4 address."""

    pass


class Resolver:
    """Interface for FQDN to single IPv4 address resolution."""

    def resolve_ipv4(self, hostname: str) -> str:
        raise NotImplementedError


def parse_host_addresses(output: str) -> list[str]:
    """Extract addresses from `host` output ("<name> has address <ip>")."""
    addresses = []
    for line in output.splitlines():
        if " has address " not in line:
            continue
        fields = line.split()
        if len(fields) >= 4:
            addresses.append(fields[3])
    return addresses


class HostCommandResolver(Resolver):
    """
    Resolves A records with the `host` utility.

    Callers must pass a hostname, not an IP address.

    Zone-redundant accounts resolve to 3 addresses; these are rejected
    with AmbiguityError rather than picking one.
    """

    def __init__(
        self,
        context: "Context | None" = None,
        logger: "Logger | None" = None,
        timeout: int | None = None,
    ):
        if context is None:
            from aznfs.core.context import Context
            context = Context()
        if logger is None:
            from aznfs.core.logging import get_logger
            logger = get_logger()
        self.context = context
        self.logger = logger
        self.timeout = timeout

    def _lookup(self, hostname: str) -> str:
        kwargs = {} if self.timeout is None else {"timeout": self.timeout}
        try:
            result = self.context.run(["host", "-4", "-t", "A", hostname], **kwargs)
        except (OSError, subprocess.SubprocessError) as e:
            self.logger.error(f"Bad Blob FQDN: {hostname}")
            raise ResolutionError(f"Lookup failed for {hostname}: {e}") from e

        if result.returncode != 0:
            self.logger.error(f"Bad Blob FQDN: {hostname}")
            raise ResolutionError(f"Lookup failed for {hostname}")
        return result.stdout

    def resolve_ipv4(self, hostname: str) -> str:
        """
        Resolve hostname to exactly one validated IPv4 address.

        Raises:
            ResolutionError: The lookup command failed
            AmbiguityError: Zero or several addresses came back
            FatalResolutionError: The address returned is not valid IPv4
        """
        addresses = parse_host_addresses(self._lookup(hostname))

        if len(addresses) != 1:
            self.logger.error(
                f"host returned {len(addresses)} address(es) for {hostname}, expected 1!"
            )
            raise AmbiguityError(hostname, len(addresses))

        ipv4_addr = addresses[0]
        if not is_valid_ipv4_address(ipv4_addr, context=self.context, timeout=self.timeout):
            self.logger.error(
                f"[FATAL] host returned bad IPv4 address {ipv4_addr} for hostname {hostname}!"
            )
            raise FatalResolutionError(
                f"host returned bad IPv4 address {ipv4_addr} for hostname {hostname}"
            )

        self.logger.verbose(f"Resolved {hostname} -> {ipv4_addr}")
        return ipv4_addr


def resolve_ipv4(
    hostname: str,
    context: "Context | None" = None,
    logger: "Logger | None" = None,
    resolver: Resolver | None = None,
) -> str:
    """Resolve hostname with the given resolver (default: `host` command)."""
    if resolver is None:
        resolver = HostCommandResolver(context=context, logger=logger)
    return resolver.resolve_ipv4(hostname)
