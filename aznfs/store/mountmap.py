"""
Mountmap store shared by the mount helper and the watchdog.

Each line records one redirected mount as "<fqdn> <local_ip> <blob_ip>":
the blob endpoint name, the local address the NFS client mounts, and the
endpoint address the local address is DNAT'ed to.

The file is kept immutable (chattr +i) and every mutation runs under an
exclusive flock on the file itself. The immutability window always nests
inside the lock window:

    flock -> chattr -i -> mutate -> chattr +i -> unlock

Mutations rewrite the file in place so the inode, and with it the lock,
stays the same for every process.
"""

import fcntl
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from aznfs.lib.process import command_succeeds
from aznfs.net.nat import NatError, NatRule

if TYPE_CHECKING:
    from aznfs.core.context import Context
    from aznfs.core.logging import Logger
    from aznfs.net.nat import NatRuleManager


class MountmapError(Exception):
    """The mountmap file could not be read or written."""

    pass


@dataclass(frozen=True)
class MountmapEntry:
    """One redirected mount."""

    fqdn: str
    local_ip: str
    blob_ip: str

    @property
    def line(self) -> str:
        return f"{self.fqdn} {self.local_ip} {self.blob_ip}"

    def __str__(self) -> str:
        return self.line

    @classmethod
    def parse(cls, line: str) -> "MountmapEntry | None":
        """Parse a mountmap line, None if it is not three fields."""
        fields = line.split()
        if len(fields) != 3:
            return None
        return cls(*fields)


def normalize(entry: "MountmapEntry | str") -> str:
    """Canonical line form used for comparisons."""
    return " ".join(str(entry).split())


@dataclass
class ReconcileReport:
    """What reconcile changed, and what it left alone."""

    removed_entries: list[MountmapEntry] = field(default_factory=list)
    restored_rules: list[NatRule] = field(default_factory=list)
    unknown_rules: list[NatRule] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed_entries or self.restored_rules)

    def to_dict(self) -> dict:
        return {
            "removed_entries": [e.line for e in self.removed_entries],
            "restored_rules": [str(r) for r in self.restored_rules],
            "unknown_rules": [str(r) for r in self.unknown_rules],
            "errors": list(self.errors),
        }


class MountmapStore:
    """Append/delete-only store for mountmap entries."""

    def __init__(
        self,
        path: Path,
        context: "Context | None" = None,
        logger: "Logger | None" = None,
        immutable: bool = True,
        timeout: int | None = None,
    ):
        if logger is None:
            from aznfs.core.logging import get_logger
            logger = get_logger()
        self.path = Path(path)
        self.context = context
        self.logger = logger
        self.immutable = immutable
        self.timeout = timeout

    def _chattr(self, flag: str) -> None:
        if not self.immutable:
            return
        cmd = ["chattr", flag, str(self.path)]
        if not command_succeeds(cmd, context=self.context, timeout=self.timeout):
            self.logger.warning(f"chattr {flag} failed on {self.path}.")

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold the exclusive lock on the mountmap."""
        try:
            f = open(self.path, "r")
        except OSError as e:
            self.logger.error(f"Cannot open MOUNTMAP {self.path}: {e}")
            raise MountmapError(f"Cannot open {self.path}: {e}") from e

        with f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    @contextmanager
    def _writable(self) -> Iterator[None]:
        """Lift immutability for the duration of a write. Caller holds the lock."""
        self._chattr("-i")
        try:
            yield
        finally:
            self._chattr("+i")

    def _read_text(self) -> str:
        try:
            return self.path.read_text()
        except OSError as e:
            self.logger.error(f"Cannot read MOUNTMAP {self.path}: {e}")
            raise MountmapError(f"Cannot read {self.path}: {e}") from e

    def _read_lines(self) -> list[str]:
        return self._read_text().splitlines()

    def _append_line(self, line: str, current: str) -> None:
        if current and not current.endswith("\n"):
            line = "\n" + line
        try:
            with open(self.path, "a") as f:
                f.write(line + "\n")
        except OSError as e:
            self.logger.error(f"Cannot append to MOUNTMAP {self.path}: {e}")
            raise MountmapError(f"Cannot append to {self.path}: {e}") from e

    def _rewrite(self, lines: list[str]) -> None:
        content = "".join(f"{line}\n" for line in lines)
        try:
            with open(self.path, "r+") as f:
                f.seek(0)
                f.write(content)
                f.truncate()
        except OSError as e:
            self.logger.error(f"Cannot rewrite MOUNTMAP {self.path}: {e}")
            raise MountmapError(f"Cannot rewrite {self.path}: {e}") from e

    def lines(self) -> list[str]:
        """All non-empty lines, without taking the lock."""
        return [line for line in self._read_lines() if line.strip()]

    def entries(self) -> list[MountmapEntry]:
        """All parseable entries, without taking the lock."""
        parsed = (MountmapEntry.parse(line) for line in self.lines())
        return [entry for entry in parsed if entry is not None]

    def contains(self, entry: MountmapEntry | str) -> bool:
        key = normalize(entry)
        return any(normalize(line) == key for line in self.lines())

    def add(self, entry: MountmapEntry | str) -> bool:
        """
        Add an entry for a new mount or an IP change.

        Returns:
            True if the entry was appended, False if it was already present
        """
        line = normalize(entry)
        if not line:
            raise ValueError("Empty mountmap entry")

        with self._locked():
            current = self._read_text()
            if any(normalize(existing) == line for existing in current.splitlines()):
                self.logger.plain(f"[{line}] already exists in MOUNTMAP.")
                return False
            with self._writable():
                self._append_line(line, current)

        self.logger.verbose(f"Added [{line}] to MOUNTMAP.")
        return True

    def delete(self, entry: MountmapEntry | str) -> int:
        """
        Delete every line equal to entry, for an unmount or an IP change.

        Returns:
            Number of lines removed (0 if the entry was absent)
        """
        line = normalize(entry)

        with self._locked():
            current = self._read_lines()
            kept = [existing for existing in current if normalize(existing) != line]
            removed = len(current) - len(kept)
            if removed:
                with self._writable():
                    self._rewrite(kept)

        if removed:
            self.logger.verbose(f"Deleted [{line}] from MOUNTMAP.")
        return removed

    def replace(self, old: MountmapEntry | str, new: MountmapEntry | str) -> None:
        """Swap old for new in one critical section."""
        old_line = normalize(old)
        new_line = normalize(new)

        with self._locked():
            kept = [
                existing for existing in self._read_lines()
                if normalize(existing) not in (old_line, new_line)
            ]
            kept.append(new_line)
            with self._writable():
                self._rewrite(kept)

        self.logger.verbose(f"Replaced [{old_line}] with [{new_line}] in MOUNTMAP.")

    def reconcile(
        self,
        nat: "NatRuleManager",
        mounted_ips: set[str],
    ) -> ReconcileReport:
        """
        Bring the mountmap and the NAT table back in line with live mounts.

        Entries whose local address is no longer mounted are dropped along
        with their DNAT rule. Live entries whose rule went missing (e.g.
        after a reboot flushed the table) get it reinstalled. DNAT rules
        with no entry are reported but left in place, since other tools
        share the table.
        """
        report = ReconcileReport()
        entries = self.entries()

        try:
            live_rules = set(nat.rules())
        except NatError as e:
            self.logger.error(f"Reconcile aborted, cannot list DNAT rules: {e}")
            raise

        for entry in entries:
            rule = NatRule(entry.local_ip, entry.blob_ip)

            if entry.local_ip not in mounted_ips:
                try:
                    if rule in live_rules:
                        nat.delete_rule(rule.destination, rule.target)
                    self.delete(entry)
                except (NatError, MountmapError) as e:
                    report.errors.append(f"{entry.line}: {e}")
                    continue
                self.logger.warning(f"Removed stale MOUNTMAP entry [{entry.line}].")
                report.removed_entries.append(entry)
                continue

            if rule not in live_rules:
                try:
                    nat.add_rule(rule.destination, rule.target)
                except NatError as e:
                    report.errors.append(f"{entry.line}: {e}")
                    continue
                self.logger.warning(f"Restored missing DNAT rule [{rule}].")
                report.restored_rules.append(rule)

        known = {NatRule(e.local_ip, e.blob_ip) for e in entries}
        report.unknown_rules = sorted(
            (r for r in live_rules if r not in known),
            key=lambda r: (r.destination, r.target),
        )
        return report
