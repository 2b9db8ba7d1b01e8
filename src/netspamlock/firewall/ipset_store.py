# src/netspamlock/firewall/ipset_store.py
"""
Rule store backed by the kernel packet filter.

A rule named N is two ipsets, N (inet) and N-v6 (inet6), each referenced
by one DROP rule at the top of the iptables / ip6tables INPUT chain.
"""
import subprocess

from netspamlock.errors import RuleNotFound, StoreError
from netspamlock.firewall.rules import (
    ACTION_BLOCK, DIRECTION_IN, INTERFACES_ALL, RULE_DESCRIPTION,
    BlockRule, RuleStore, format_addresses, parse_addresses,
)
from netspamlock.utils.logger import get_logger

_logger = get_logger()

IPSET_NAME_MAX = 31
V6_SUFFIX = "-v6"
FAMILIES = (("inet", "iptables", ""), ("inet6", "ip6tables", V6_SUFFIX))


def _family_of(entry):
    version = getattr(entry, "version", None)
    if version is not None:
        return "inet" if version == 4 else "inet6"
    return "inet6" if ":" in entry else "inet"


class IpsetRuleStore(RuleStore):
    def __init__(self, lock_path=None, run=subprocess.run, hashsize=1024, maxelem=65536):
        super().__init__(lock_path)
        self._runner = run
        self.hashsize = hashsize
        self.maxelem = maxelem

    def _run(self, args, check=True):
        try:
            result = self._runner(args, capture_output=True, text=True)
        except FileNotFoundError:
            raise StoreError(f"{args[0]} is not installed")
        except OSError as e:
            raise StoreError(f"Cannot run {args[0]}: {e}")
        if check and result.returncode != 0:
            raise StoreError(f"{' '.join(args)} failed: {(result.stderr or '').strip()}")
        return result

    @staticmethod
    def _set_name(name, suffix):
        set_name = name + suffix
        if not set_name or len(set_name) > IPSET_NAME_MAX or any(c.isspace() for c in set_name):
            raise StoreError(f"{set_name!r} is not a usable ipset name")
        return set_name

    def _members(self, set_name):
        """Entries of an ipset, or None if the set does not exist."""
        result = self._run(["ipset", "save", set_name], check=False)
        if result.returncode != 0:
            if "does not exist" in (result.stderr or ""):
                return None
            raise StoreError(f"ipset save {set_name} failed: {(result.stderr or '').strip()}")
        members = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) >= 3 and parts[0] == "add" and parts[1] == set_name:
                members.append(parts[2])
        return members

    @staticmethod
    def _match_spec(set_name):
        return ["INPUT", "-m", "set", "--match-set", set_name, "src", "-j", "DROP"]

    def _is_hooked(self, binary, set_name):
        result = self._run([binary, "-C"] + self._match_spec(set_name), check=False)
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        raise StoreError(f"{binary} -C failed: {(result.stderr or '').strip()}")

    def _hook(self, binary, set_name, enabled):
        hooked = self._is_hooked(binary, set_name)
        if enabled and not hooked:
            self._run([binary, "-I", "INPUT", "1"] + self._match_spec(set_name)[1:])
        elif not enabled and hooked:
            self._run([binary, "-D"] + self._match_spec(set_name))

    def _write(self, rule, prune=True):
        wanted = parse_addresses(rule.addresses)
        for family, binary, suffix in FAMILIES:
            set_name = self._set_name(rule.name, suffix)
            members = self._members(set_name)
            desired = {e for e in wanted if _family_of(e) == family}
            # IPv4-only hosts never need the v6 set or ip6tables
            if members is None and not desired and suffix:
                continue
            self._run(["ipset", "create", set_name, "hash:net", "family", family,
                       "hashsize", str(self.hashsize), "maxelem", str(self.maxelem), "-exist"])
            current = parse_addresses(",".join(members or []))
            for entry in sorted(map(str, desired - current)):
                self._run(["ipset", "add", set_name, entry, "-exist"])
            if prune:
                for entry in sorted(map(str, current - desired)):
                    self._run(["ipset", "del", set_name, entry, "-exist"])
            self._hook(binary, set_name, rule.enabled)

    def _both_sets(self, name):
        """Members of (v4 set, v6 set); None for a set that does not exist."""
        return (self._members(self._set_name(name, "")),
                self._members(self._set_name(name, V6_SUFFIX)))

    def get_rule(self, name):
        # either set on its own still counts as the rule, so its members survive
        v4, v6 = self._both_sets(name)
        if v4 is None and v6 is None:
            raise RuleNotFound(name)
        enabled = v4 is not None and self._is_hooked("iptables", name)
        if v6:
            enabled = enabled and self._is_hooked("ip6tables", name + V6_SUFFIX)
        return BlockRule(
            name=name,
            description=RULE_DESCRIPTION,
            action=ACTION_BLOCK,
            direction=DIRECTION_IN,
            enabled=enabled,
            interfaces=INTERFACES_ALL,
            addresses=format_addresses(parse_addresses(",".join((v4 or []) + (v6 or [])))),
        )

    def add_rule(self, rule):
        if self._both_sets(rule.name) != (None, None):
            raise StoreError(f"Rule {rule.name!r} already exists")
        self._write(rule, prune=False)
        _logger.info(f"[STORE] Created ipset rule {rule.name}")

    def update_rule(self, rule):
        if self._both_sets(rule.name) == (None, None):
            raise RuleNotFound(rule.name)
        self._write(rule)
        _logger.info(f"[STORE] Updated ipset rule {rule.name}")
