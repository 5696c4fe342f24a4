"""Mount redirection workflows built from resolver, mountmap and NAT rules."""

from typing import TYPE_CHECKING

from aznfs.lib.process import run_command
from aznfs.net.nat import NatError, NatRuleManager
from aznfs.net.resolver import HostCommandResolver, Resolver
from aznfs.net.validate import is_private_ip
from aznfs.store.mountmap import MountmapEntry, MountmapStore, ReconcileReport

if TYPE_CHECKING:
    from aznfs.core.config import Config
    from aznfs.core.context import Context
    from aznfs.core.logging import Logger

NFS_FSTYPES = "nfs,nfs4"


class RedirectError(Exception):
    """A redirect could not be set up as requested."""

    pass


def parse_mount_sources(content: str) -> set[str]:
    """Server addresses from `findmnt -n -o SOURCE` lines ("10.0.0.5:/acct/cont")."""
    hosts = set()
    for line in content.splitlines():
        source = line.strip()
        if ":" not in source:
            continue
        hosts.add(source.split(":", 1)[0])
    return hosts


def list_mounted_ips(
    context: "Context | None" = None,
    timeout: int | None = None,
) -> set[str]:
    """Addresses that currently have an NFS mount on this host."""
    # findmnt exits 1 when nothing matches; that is just an empty set
    output = run_command(
        ["findmnt", "-t", NFS_FSTYPES, "-n", "-o", "SOURCE"],
        context=context,
        timeout=timeout,
    )
    return parse_mount_sources(output)


class Redirector:
    """
    Keeps a local address redirected to a blob endpoint's current IP.

    The mount helper calls setup() before mounting and teardown() after
    unmounting. The watchdog calls refresh() on its own schedule and
    reconcile() on startup.
    """

    def __init__(
        self,
        store: MountmapStore,
        nat: NatRuleManager,
        resolver: Resolver,
        logger: "Logger",
        context: "Context | None" = None,
        timeout: int | None = None,
    ):
        self.store = store
        self.nat = nat
        self.resolver = resolver
        self.logger = logger
        self.context = context
        self.timeout = timeout

    @classmethod
    def from_config(
        cls,
        config: "Config",
        context: "Context | None" = None,
        logger: "Logger | None" = None,
    ) -> "Redirector":
        if logger is None:
            from aznfs.core.logging import get_logger
            logger = get_logger()
        timeout = config.command_timeout
        return cls(
            store=MountmapStore(
                config.mountmap_file,
                context=context,
                logger=logger,
                immutable=config.immutable,
                timeout=timeout,
            ),
            nat=NatRuleManager(context=context, logger=logger, timeout=timeout),
            resolver=HostCommandResolver(context=context, logger=logger, timeout=timeout),
            logger=logger,
            context=context,
            timeout=timeout,
        )

    def find(self, local_ip: str) -> MountmapEntry | None:
        """The entry redirecting local_ip, if any."""
        for entry in self.store.entries():
            if entry.local_ip == local_ip:
                return entry
        return None

    def setup(self, fqdn: str, local_ip: str) -> MountmapEntry:
        """
        Resolve fqdn and redirect local_ip to it.

        Raises:
            RedirectError: local_ip is not private, or already redirects
                another endpoint
            ResolutionError: fqdn did not resolve to one address
            RuleInstallError: the DNAT rule could not be added
        """
        if not is_private_ip(local_ip, context=self.context, timeout=self.timeout):
            self.logger.error(f"Local address {local_ip} is not a private IPv4 address.")
            raise RedirectError(f"{local_ip} is not a private IPv4 address")

        existing = self.find(local_ip)
        if existing is not None and existing.fqdn != fqdn:
            self.logger.error(f"Local address {local_ip} already used for {existing.fqdn}.")
            raise RedirectError(f"{local_ip} already redirects {existing.fqdn}")

        blob_ip = self.resolver.resolve_ipv4(fqdn)
        entry = MountmapEntry(fqdn, local_ip, blob_ip)

        if existing is not None and existing != entry:
            return self._switch(existing, entry)

        added = self.store.add(entry)
        try:
            self.nat.add_rule(local_ip, blob_ip)
        except NatError:
            if added:
                self.store.delete(entry)
            raise

        self.logger.success(f"Redirecting {local_ip} -> {blob_ip} for {fqdn}.")
        return entry

    def teardown(self, entry: MountmapEntry) -> None:
        """Drop the DNAT rule and then the mountmap entry."""
        self.nat.delete_rule(entry.local_ip, entry.blob_ip)
        self.store.delete(entry)
        self.logger.success(f"Removed redirect {entry.local_ip} -> {entry.blob_ip} for {entry.fqdn}.")

    def refresh(self, entry: MountmapEntry) -> MountmapEntry:
        """
        Re-resolve the endpoint and follow an IP change.

        Returns:
            The current entry (the same one if the IP did not change)
        """
        blob_ip = self.resolver.resolve_ipv4(entry.fqdn)
        if blob_ip == entry.blob_ip:
            self.logger.verbose(f"IP for {entry.fqdn} unchanged ({blob_ip}).")
            return entry

        self.logger.warning(f"IP for {entry.fqdn} changed [{entry.blob_ip} -> {blob_ip}].")
        return self._switch(entry, MountmapEntry(entry.fqdn, entry.local_ip, blob_ip))

    def _switch(self, old: MountmapEntry, new: MountmapEntry) -> MountmapEntry:
        # The first matching DNAT rule wins, so the old one goes first
        self.nat.delete_rule(old.local_ip, old.blob_ip)
        try:
            self.nat.add_rule(new.local_ip, new.blob_ip)
        except NatError:
            self.logger.error(f"Restoring DNAT rule [{old.local_ip} -> {old.blob_ip}].")
            try:
                self.nat.add_rule(old.local_ip, old.blob_ip)
            except NatError as restore_error:
                self.logger.error(
                    f"[FATAL] Could not restore DNAT rule [{old.local_ip} -> {old.blob_ip}]: {restore_error}"
                )
            raise
        self.store.replace(old, new)
        self.logger.success(f"Redirecting {new.local_ip} -> {new.blob_ip} for {new.fqdn}.")
        return new

    def reconcile(self) -> ReconcileReport:
        """Repair drift between the mountmap, live NFS mounts and the NAT table."""
        mounted = list_mounted_ips(context=self.context, timeout=self.timeout)
        report = self.store.reconcile(self.nat, mounted)
        if report.changed:
            self.logger.success(
                f"Reconciled MOUNTMAP: {len(report.removed_entries)} stale entries removed, "
                f"{len(report.restored_rules)} DNAT rules restored."
            )
        else:
            self.logger.verbose("MOUNTMAP is in sync.")
        return report
