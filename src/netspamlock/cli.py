# src/netspamlock/cli.py
import argparse, sys
from functools import partial

from netspamlock import __version__
from netspamlock.config import load_config
from netspamlock.errors import NetSpamLockError
from netspamlock.firewall.reconciler import BlocklistReconciler
from netspamlock.geo import lookup
from netspamlock.guard import build_census, build_store, connection_report, scan_and_block
from netspamlock.shell import Shell
from netspamlock.utils.logger import get_logger

_logger = get_logger()

USAGE = "\n".join([
    f"Khaos NetSpamLock v{__version__}\n",
    "Usage: netspamlock [-c CONFIG] [-s | -l | -h]",
    "\t-s\tSilently scan and block malicious connections.",
    "\t-l\tList all current connections sorted by connection number.",
    "\t-c\tPath to the JSON configuration (default: config.json).",
    "\t-h\tShow this help (also -help, --help).",
])


def build_parser():
    parser = argparse.ArgumentParser(prog="netspamlock", add_help=False)
    parser.add_argument("--config", "-c", default=None, help="JSON configuration file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-s", dest="silent", action="store_true")
    mode.add_argument("-l", dest="list", action="store_true")
    mode.add_argument("-h", "-help", "--help", dest="help", action="store_true")
    return parser


def run_shell(config, census):
    reconciler = None
    if config.rule_name:
        reconciler = BlocklistReconciler(build_store(config), config.require_rule_name())
    geo = None
    if config.geo_url:
        geo = partial(lookup, url_template=config.geo_url, timeout=config.geo_timeout)
    return Shell(census, reconciler, geo, config.blocked_log).run()


def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.help:
        print(USAGE)
        return 0

    try:
        config = load_config(args.config)
        census = build_census(config)
        if args.silent:
            result = scan_and_block(config, census, build_store(config))
            _logger.info(f"[MAIN] Silent scan finished: {result.action}")
            return 0
        if args.list:
            print("\n".join(connection_report(census)))
            print()
            return 0
        return run_shell(config, census)
    except NetSpamLockError as e:
        _logger.error(f"[MAIN] {type(e).__name__}: {e}")
        print(f"netspamlock: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
