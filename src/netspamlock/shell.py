# src/netspamlock/shell.py
import ipaddress
from dataclasses import dataclass

from netspamlock.census.classifier import normalize
from netspamlock.errors import NetSpamLockError
from netspamlock.guard import connection_report, record_blocked
from netspamlock.utils.logger import get_logger

_logger = get_logger()

PROMPT = "netspamlock> "
BANNER = "NetSpamLock Interactive Shell\n"
UNKNOWN = "Unknown command, type 'help' for basic usage.\n"
HELP_TEXT = "\n".join([
    "Interactive shell commands overview.",
    "",
    "list\t\tList all active connections sorted by their count from one IP.",
    "isin {IP}\tFind if specified IP was blacklisted.",
    "unblock {IP}\tDelete specified IP from the blocklist.",
    "block {IP}\tAdd specified IP to the blocklist.",
    "geo {IP}\tSearch for GEO-IP information about specified address.",
    "geoblocked\tSearches GEO-IP info for all currently blocked addresses.",
    "",
])


# --- commands ---

@dataclass(frozen=True)
class EmptyCommand:
    pass

@dataclass(frozen=True)
class ListCommand:
    pass

@dataclass(frozen=True)
class IsInCommand:
    address: object

@dataclass(frozen=True)
class BlockCommand:
    address: object

@dataclass(frozen=True)
class UnblockCommand:
    address: object

@dataclass(frozen=True)
class GeoCommand:
    address: object

@dataclass(frozen=True)
class GeoBlockedCommand:
    pass

@dataclass(frozen=True)
class HelpCommand:
    pass

@dataclass(frozen=True)
class ExitCommand:
    pass

@dataclass(frozen=True)
class UnknownCommand:
    text: str
    message: str = UNKNOWN


@dataclass(frozen=True)
class Outcome:
    kind: str  # ok | error | unimplemented | exit
    text: str = ""


PLAIN_COMMANDS = {
    "list": ListCommand,
    "geoblocked": GeoBlockedCommand,
    "help": HelpCommand,
    "exit": ExitCommand,
    "quit": ExitCommand,
}
ADDRESS_COMMANDS = {
    "isin": IsInCommand,
    "block": BlockCommand,
    "unblock": UnblockCommand,
    "geo": GeoCommand,
}
VERBS = {cls: verb for verb, cls in {**PLAIN_COMMANDS, **ADDRESS_COMMANDS}.items()}


def parse_command(line):
    """Map one input line to a command. Never raises."""
    parts = (line or "").split()
    if not parts:
        return EmptyCommand()
    verb, args = parts[0].lower(), parts[1:]
    if verb in PLAIN_COMMANDS:
        return PLAIN_COMMANDS[verb]()
    if verb in ADDRESS_COMMANDS:
        if len(args) != 1:
            return UnknownCommand(line, f"Usage: {verb} {{IP}}\n")
        try:
            return ADDRESS_COMMANDS[verb](normalize(args[0]))
        except ValueError:
            return UnknownCommand(line, f"{args[0]} is not a valid IP address.\n")
    return UnknownCommand(line)


class Shell:
    """
    Read-eval loop over the command grammar. Any command whose collaborator
    is missing answers "not implemented" instead of failing.
    """

    def __init__(self, census, reconciler=None, geo=None, audit_path=None,
                 input_fn=None, output=print):
        self.census = census
        self.reconciler = reconciler
        self.geo = geo
        self.audit_path = audit_path
        self.input_fn = input_fn or input
        self.output = output
        self.handlers = {
            EmptyCommand: lambda cmd: Outcome("ok"),
            ListCommand: self._list,
            HelpCommand: lambda cmd: Outcome("ok", HELP_TEXT),
            ExitCommand: lambda cmd: Outcome("exit", "Bye!"),
            UnknownCommand: lambda cmd: Outcome("error", cmd.message),
        }
        if reconciler is not None:
            self.handlers[IsInCommand] = self._isin
            self.handlers[BlockCommand] = self._block
            self.handlers[UnblockCommand] = self._unblock
        if geo is not None:
            self.handlers[GeoCommand] = self._geo
            if reconciler is not None:
                self.handlers[GeoBlockedCommand] = self._geoblocked

    def execute(self, command):
        handler = self.handlers.get(type(command))
        if handler is None:
            return Outcome("unimplemented", f"Command '{VERBS.get(type(command), '?')}' is not implemented in this setup.\n")
        try:
            return handler(command)
        except NetSpamLockError as e:
            _logger.error(f"[SHELL] {type(command).__name__} failed: {e}")
            return Outcome("error", f"Error: {e}\n")

    def run(self):
        self.output(BANNER)
        while True:
            try:
                line = self.input_fn(PROMPT)
            except (EOFError, KeyboardInterrupt):
                self.output("Bye!")
                return 0
            outcome = self.execute(parse_command(line))
            if outcome.text:
                self.output(outcome.text)
            if outcome.kind == "exit":
                return 0

    # --- handlers ---

    def _list(self, cmd):
        return Outcome("ok", "\n".join(connection_report(self.census)) + "\n")

    def _isin(self, cmd):
        if self.reconciler.is_blocked(cmd.address):
            return Outcome("ok", f"{cmd.address} is blocked.\n")
        return Outcome("ok", f"{cmd.address} is not blocked.\n")

    def _block(self, cmd):
        if self.reconciler.is_blocked(cmd.address):
            return Outcome("ok", f"{cmd.address} is already blocked.\n")
        if self.audit_path:
            record_blocked({cmd.address}, self.audit_path)
        self.reconciler.reconcile({cmd.address})
        return Outcome("ok", f"{cmd.address} blocked.\n")

    def _unblock(self, cmd):
        if self.reconciler.revoke({cmd.address}):
            return Outcome("ok", f"{cmd.address} unblocked.\n")
        return Outcome("ok", f"{cmd.address} was not blocked.\n")

    def _describe(self, address):
        info = self.geo(address)
        if info is None:
            return f"{address}\tno data"
        return f"{info.ip}\t{info.country}\t{info.region}\t{info.city}"

    def _geo(self, cmd):
        return Outcome("ok", self._describe(cmd.address) + "\n")

    def _geoblocked(self, cmd):
        blocked = [a for a in self.reconciler.blocked_addresses()
                   if isinstance(a, (ipaddress.IPv4Address, ipaddress.IPv6Address))]
        if not blocked:
            return Outcome("ok", "No addresses are blocked.\n")
        blocked.sort(key=lambda a: (a.version, int(a)))
        return Outcome("ok", "\n".join(self._describe(a) for a in blocked) + "\n")
