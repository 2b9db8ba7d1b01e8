# src/netspamlock/firewall/reconciler.py
from dataclasses import dataclass, field

from netspamlock.census.classifier import normalize
from netspamlock.errors import RuleNotFound, StoreError
from netspamlock.firewall.fsm import ReconcileModel
from netspamlock.firewall.rules import BlockRule, parse_addresses
from netspamlock.utils.logger import get_logger

_logger = get_logger()


@dataclass
class ReconcileResult:
    action: str
    addresses: set = field(default_factory=set)


class BlocklistReconciler:
    """
    Grows the managed block rule. Existing entries are never dropped by
    reconcile(); only revoke() removes addresses, on explicit request.
    """

    def __init__(self, store, rule_name):
        self.store = store
        self.rule_name = rule_name
        self.model = ReconcileModel()

    def reconcile(self, new_addresses):
        new = {normalize(a) for a in new_addresses}
        self.model.reset()
        if not new:
            self.model.skip()
            _logger.info("[BLOCK] Nothing to block")
            return ReconcileResult("skipped")

        with self.store.locked():
            self.model.fetch()
            try:
                try:
                    rule = self.store.get_rule(self.rule_name)
                except RuleNotFound:
                    self.model.missing()
                    rule = BlockRule(name=self.rule_name).with_defaults(new)
                    self.store.add_rule(rule)
                    action, merged = "created", new
                else:
                    self.model.found()
                    current = parse_addresses(rule.addresses)
                    merged = current | new
                    self.store.update_rule(rule.with_defaults(merged))
                    action = "updated"
            except StoreError:
                self.model.fail()
                raise
            self.model.commit()

        _logger.info(f"[BLOCK] Rule {self.rule_name} {action}; {len(merged)} blocked addresses")
        return ReconcileResult(action, merged)

    def blocked_addresses(self):
        try:
            rule = self.store.get_rule(self.rule_name)
        except RuleNotFound:
            return set()
        return parse_addresses(rule.addresses)

    def is_blocked(self, address):
        return normalize(address) in self.blocked_addresses()

    def revoke(self, addresses):
        """Remove addresses from the rule. Returns True if anything changed."""
        gone = {normalize(a) for a in addresses}
        if not gone:
            return False
        with self.store.locked():
            try:
                rule = self.store.get_rule(self.rule_name)
            except RuleNotFound:
                return False
            current = parse_addresses(rule.addresses)
            if not current & gone:
                return False
            self.store.update_rule(rule.with_defaults(current - gone))
        _logger.info(f"[BLOCK] Removed {', '.join(sorted(map(str, gone)))} from rule {self.rule_name}")
        return True
