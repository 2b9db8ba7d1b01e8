import subprocess

import pytest

from netspamlock.errors import RuleNotFound, StoreError
from netspamlock.firewall.ipset_store import IpsetRuleStore
from netspamlock.firewall.reconciler import BlocklistReconciler
from netspamlock.firewall.rules import BlockRule, parse_addresses
from conftest import ip


class FakeFirewall:
    """Just enough of ipset/iptables/ip6tables to drive the store."""

    def __init__(self, sets=None, hooks=None, denied=False):
        self.sets = {name: list(members) for name, members in (sets or {}).items()}
        self.hooks = set(hooks or ())
        self.denied = denied
        self.commands = []

    def _done(self, args, rc=0, out="", err=""):
        return subprocess.CompletedProcess(args, rc, out, err)

    def __call__(self, args, capture_output=True, text=True):
        self.commands.append(args)
        if self.denied:
            return self._done(args, 1 if args[0] == "ipset" else 4, err="Operation not permitted")
        tool, op = args[0], args[1]
        if tool == "ipset":
            name = args[2]
            if op == "save":
                if name not in self.sets:
                    return self._done(args, 1, err=f"ipset v7.1: The set with the given name does not exist")
                lines = [f"create {name} hash:net family inet"] + [f"add {name} {m}" for m in self.sets[name]]
                return self._done(args, out="\n".join(lines) + "\n")
            if op == "create":
                self.sets.setdefault(name, [])
            elif op == "add":
                if args[3] not in self.sets[name]:
                    self.sets[name].append(args[3])
            elif op == "del":
                if args[3] in self.sets[name]:
                    self.sets[name].remove(args[3])
            return self._done(args)
        key = (tool, args[args.index("--match-set") + 1])
        if op == "-C":
            return self._done(args, 0 if key in self.hooks else 1)
        if op == "-I":
            self.hooks.add(key)
        elif op == "-D":
            self.hooks.discard(key)
        return self._done(args)


def test_missing_sets_mean_rule_not_found():
    store = IpsetRuleStore(run=FakeFirewall())
    with pytest.raises(RuleNotFound):
        store.get_rule("spam")


def test_create_path_builds_sets_and_drop_rules():
    fw = FakeFirewall()
    store = IpsetRuleStore(run=fw)
    BlocklistReconciler(store, "spam").reconcile({ip("203.0.113.1"), ip("2001:db8::1")})
    assert fw.sets == {"spam": ["203.0.113.1"], "spam-v6": ["2001:db8::1"]}
    assert fw.hooks == {("iptables", "spam"), ("ip6tables", "spam-v6")}
    insert = [c for c in fw.commands if c[:2] == ["iptables", "-I"]][0]
    assert insert == ["iptables", "-I", "INPUT", "1", "-m", "set", "--match-set", "spam", "src", "-j", "DROP"]
    rule = store.get_rule("spam")
    assert rule.enabled is True
    assert parse_addresses(rule.addresses) == {ip("203.0.113.1"), ip("2001:db8::1")}


def test_update_path_unions_and_rehooks():
    # the DROP rule was removed by hand; the sets survived
    fw = FakeFirewall(sets={"spam": ["198.51.100.7", "10.9.0.0/16"], "spam-v6": []})
    store = IpsetRuleStore(run=fw)
    assert store.get_rule("spam").enabled is False
    result = BlocklistReconciler(store, "spam").reconcile({ip("203.0.113.1")})
    assert result.action == "updated"
    assert sorted(fw.sets["spam"]) == ["10.9.0.0/16", "198.51.100.7", "203.0.113.1"]
    assert ("iptables", "spam") in fw.hooks


def test_revoke_deletes_members():
    fw = FakeFirewall(sets={"spam": ["198.51.100.7", "203.0.113.1"], "spam-v6": []},
                      hooks={("iptables", "spam"), ("ip6tables", "spam-v6")})
    store = IpsetRuleStore(run=fw)
    assert BlocklistReconciler(store, "spam").revoke({ip("203.0.113.1")}) is True
    assert fw.sets["spam"] == ["198.51.100.7"]


def test_disabled_rule_is_unhooked():
    fw = FakeFirewall(sets={"spam": ["198.51.100.7"], "spam-v6": []},
                      hooks={("iptables", "spam"), ("ip6tables", "spam-v6")})
    store = IpsetRuleStore(run=fw)
    store.update_rule(BlockRule(name="spam", enabled=False, addresses="198.51.100.7"))
    assert fw.hooks == set()


def test_permission_problems_are_store_errors():
    store = IpsetRuleStore(run=FakeFirewall(denied=True))
    with pytest.raises(StoreError) as exc:
        BlocklistReconciler(store, "spam").reconcile({ip("203.0.113.1")})
    assert not isinstance(exc.value, RuleNotFound)


def test_missing_binary_is_a_store_error():
    def absent(args, capture_output=True, text=True):
        raise FileNotFoundError(args[0])
    with pytest.raises(StoreError):
        IpsetRuleStore(run=absent).get_rule("spam")


def test_overlong_set_name_is_refused():
    with pytest.raises(StoreError):
        IpsetRuleStore(run=FakeFirewall()).get_rule("x" * 32)


def test_ipv4_only_rule_skips_ip6tables():
    fw = FakeFirewall()
    BlocklistReconciler(IpsetRuleStore(run=fw), "spam").reconcile({ip("203.0.113.1")})
    assert set(fw.sets) == {"spam"}
    assert not any(c[0] == "ip6tables" for c in fw.commands)


def test_lone_v6_set_keeps_its_members():
    # v4 set was destroyed by hand; the v6 half of the rule is still there
    fw = FakeFirewall(sets={"spam-v6": ["2001:db8::66"]})
    store = IpsetRuleStore(run=fw)
    assert parse_addresses(store.get_rule("spam").addresses) == {ip("2001:db8::66")}
    result = BlocklistReconciler(store, "spam").reconcile({ip("203.0.113.1")})
    assert result.action == "updated"
    assert fw.sets == {"spam": ["203.0.113.1"], "spam-v6": ["2001:db8::66"]}
    assert fw.hooks == {("iptables", "spam"), ("ip6tables", "spam-v6")}


def test_lone_v4_set_without_hook_keeps_its_members():
    fw = FakeFirewall(sets={"spam": ["198.51.100.7"]})
    store = IpsetRuleStore(run=fw)
    assert store.get_rule("spam").enabled is False
    BlocklistReconciler(store, "spam").reconcile({ip("2001:db8::1")})
    assert fw.sets == {"spam": ["198.51.100.7"], "spam-v6": ["2001:db8::1"]}
    assert ("iptables", "spam") in fw.hooks


def test_add_rule_refuses_when_either_set_exists():
    for sets in ({"spam": []}, {"spam-v6": ["2001:db8::66"]}):
        fw = FakeFirewall(sets=sets)
        with pytest.raises(StoreError):
            IpsetRuleStore(run=fw).add_rule(BlockRule(name="spam", addresses="203.0.113.1"))
        assert not any(c[:2] == ["ipset", "del"] for c in fw.commands)
