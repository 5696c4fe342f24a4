"""DNAT rule management for blob endpoint redirection."""

import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aznfs.core.context import Context
    from aznfs.core.logging import Logger

NAT_TABLE = "nat"
NAT_CHAIN = "OUTPUT"


class NatError(Exception):
    """Error changing the NAT table."""

    pass


class RuleInstallError(NatError):
    """A DNAT rule was absent but could not be added."""

    pass


class RuleRemoveError(NatError):
    """A DNAT rule was present but could not be deleted."""

    pass


@dataclass(frozen=True)
class NatRule:
    """Redirect TCP traffic bound for destination to target."""

    destination: str
    target: str

    def __str__(self) -> str:
        return f"{self.destination} -> {self.target}"


def parse_rules(content: str) -> list[NatRule]:
    """Parse `iptables -t nat -S OUTPUT` output into TCP DNAT rules.

    Lines look like:
        -A OUTPUT -d 10.0.0.5/32 -p tcp -m tcp -j DNAT --to-destination 20.1.2.3
    """
    rules = []
    for line in content.splitlines():
        tokens = line.split()
        if not tokens or tokens[0] != "-A":
            continue

        opts: dict[str, str] = {}
        for flag, value in zip(tokens, tokens[1:]):
            if flag.startswith("-") and flag not in opts:
                opts[flag] = value

        if opts.get("-j") != "DNAT" or opts.get("-p") != "tcp":
            continue
        destination = opts.get("-d")
        target = opts.get("--to-destination")
        if not destination or not target:
            continue
        if destination.endswith("/32"):
            destination = destination[: -len("/32")]
        rules.append(NatRule(destination, target))
    return rules


class NatTableController:
    """Interface to the kernel NAT table."""

    def rule_exists(self, rule: NatRule) -> bool:
        raise NotImplementedError

    def append_rule(self, rule: NatRule) -> bool:
        raise NotImplementedError

    def delete_rule(self, rule: NatRule) -> bool:
        raise NotImplementedError

    def list_rules(self) -> list[NatRule]:
        raise NotImplementedError


class IptablesController(NatTableController):
    """NAT table access through the iptables command."""

    def __init__(self, context: "Context | None" = None, timeout: int | None = None):
        if context is None:
            from aznfs.core.context import Context
            context = Context()
        self.context = context
        self.timeout = timeout

    def _rule_cmd(self, action: str, rule: NatRule) -> list[str]:
        return [
            "iptables", "-t", NAT_TABLE, action, NAT_CHAIN,
            "-p", "tcp", "-d", rule.destination,
            "-j", "DNAT", "--to-destination", rule.target,
        ]

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess | None:
        kwargs = {} if self.timeout is None else {"timeout": self.timeout}
        try:
            return self.context.run(cmd, **kwargs)
        except (OSError, subprocess.SubprocessError):
            return None

    def _succeeds(self, cmd: list[str]) -> bool:
        result = self._run(cmd)
        return result is not None and result.returncode == 0

    def rule_exists(self, rule: NatRule) -> bool:
        return self._succeeds(self._rule_cmd("-C", rule))

    def append_rule(self, rule: NatRule) -> bool:
        return self._succeeds(self._rule_cmd("-A", rule))

    def delete_rule(self, rule: NatRule) -> bool:
        return self._succeeds(self._rule_cmd("-D", rule))

    def list_rules(self) -> list[NatRule]:
        result = self._run(["iptables", "-t", NAT_TABLE, "-S", NAT_CHAIN])
        if result is None or result.returncode != 0:
            raise NatError(f"Could not list {NAT_TABLE}/{NAT_CHAIN} rules")
        return parse_rules(result.stdout)


class NatRuleManager:
    """
    Idempotent install/remove of single DNAT rules.

    Both operations check then act with no lock around the pair, so a
    concurrent writer between the two steps is not detected. The end
    state is still the requested one in the common case.
    """

    def __init__(
        self,
        controller: NatTableController | None = None,
        context: "Context | None" = None,
        logger: "Logger | None" = None,
        timeout: int | None = None,
    ):
        if controller is None:
            controller = IptablesController(context=context, timeout=timeout)
        if logger is None:
            from aznfs.core.logging import get_logger
            logger = get_logger()
        self.controller = controller
        self.logger = logger

    def add_rule(self, destination: str, target: str) -> None:
        """Install the DNAT rule unless it already exists.

        Raises:
            RuleInstallError: If the rule was absent and could not be added
        """
        rule = NatRule(destination, target)
        if self.controller.rule_exists(rule):
            self.logger.plain(f"DNAT rule [{rule}] already exists.")
            return

        if not self.controller.append_rule(rule):
            self.logger.error(f"Failed to add DNAT rule [{rule}].")
            raise RuleInstallError(f"Failed to add DNAT rule [{rule}]")
        self.logger.verbose(f"Added DNAT rule [{rule}].")

    def delete_rule(self, destination: str, target: str) -> None:
        """Remove the DNAT rule if it exists.

        Raises:
            RuleRemoveError: If the rule was present and could not be deleted
        """
        rule = NatRule(destination, target)
        if not self.controller.rule_exists(rule):
            self.logger.plain(f"DNAT rule [{rule}] does not exist.")
            return

        if not self.controller.delete_rule(rule):
            self.logger.error(f"Failed to delete DNAT rule [{rule}].")
            raise RuleRemoveError(f"Failed to delete DNAT rule [{rule}]")
        self.logger.verbose(f"Deleted DNAT rule [{rule}].")

    def rules(self) -> list[NatRule]:
        """DNAT rules currently in the nat OUTPUT chain."""
        return self.controller.list_rules()
