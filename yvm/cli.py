#!/usr/bin/env python3
"""
yvm — ylem compiler version manager

Usage:
  yvm list                    # releases for this platform (* = active)
  yvm install latest          # newest release
  yvm install 0.8.1           # exact version
  yvm install ">=0.8.0 <0.9.0"
  yvm use 0.8.1
  yvm remove 0.8.1

Exit codes: 0 success, 1 failure, 2 usage error, 3 integrity failure
(downloaded binary does not match its published SHA-256), 130 interrupted.
"""

import argparse
import dataclasses
import logging
import sys

from yvm_core import (
    IntegrityError, Settings, VersionManager, YvmError, __version__,
    parse_semver,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTEGRITY = 3
EXIT_INTERRUPTED = 130


def build_parser():
    parser = argparse.ArgumentParser(
        prog="yvm", description="Manage installed ylem compiler versions")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    parser.add_argument("--home", type=str, default=None,
                        help="Version store directory (default: $YVM_HOME or ~/.yvm)")
    parser.add_argument("--index-url", type=str, default=None,
                        help="Remote release index URL (default: $YVM_INDEX_URL)")
    parser.add_argument("--offline", action="store_true",
                        help="Use the embedded release table only")
    parser.add_argument("--insecure", action="store_true",
                        help="Skip SSL certificate verification "
                             "(SHA-256 checks still apply)")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More logging (-v info, -vv debug)")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    sub.add_parser("list", help="List releases, marking installed and active ones")

    p_install = sub.add_parser("install", help="Install a ylem release")
    p_install.add_argument("version",
                           help="'latest', an exact version, or a range "
                                "such as '>=0.8.0 <0.9.0'")
    activation = p_install.add_mutually_exclusive_group()
    activation.add_argument("--use", dest="activate", action="store_const",
                            const=True, default=None,
                            help="Make it the active version")
    activation.add_argument("--no-use", dest="activate", action="store_const",
                            const=False,
                            help="Never change the active version")
    p_install.add_argument("--retries", type=int, default=None,
                           help="Extra download attempts on network failure "
                                "(default: $YVM_RETRIES or 2)")

    p_use = sub.add_parser("use", help="Set the active ylem version")
    p_use.add_argument("version")

    p_remove = sub.add_parser("remove", help="Remove an installed ylem version")
    p_remove.add_argument("version")

    return parser


def _settings_from_args(args):
    settings = Settings.from_env()
    overrides = {}
    if args.home:
        overrides["home"] = args.home
    if args.index_url:
        overrides["index_url"] = args.index_url
    if args.offline:
        overrides["offline"] = True
    if args.insecure:
        overrides["ssl_noverify"] = True
    return dataclasses.replace(settings, **overrides)


def cmd_list(manager, args):
    rows = manager.list_releases()
    if not rows:
        print(f"No ylem releases known for {manager.platform}")
        return EXIT_OK
    for row in rows:
        marker = "*" if row.active else " "
        status = "installed" if row.installed else ""
        if row.record is None:
            status = "installed (not in catalog)"
        print(f"{marker} {str(row.version):<16} {status}".rstrip())
    return EXIT_OK


def cmd_install(manager, args):
    result = manager.install(args.version, activate=args.activate,
                             retries=args.retries)
    version = result.installed.version
    if result.fresh:
        print(f"Installed ylem {version}")
    else:
        print(f"ylem {version} is already installed")
    current = manager.store.active_name()
    if current == str(version):
        print(f"Active version: {version}")
    return EXIT_OK


def cmd_use(manager, args):
    manager.use(args.version)
    print(f"Active version: {parse_semver(args.version)}")
    return EXIT_OK


def cmd_remove(manager, args):
    manager.remove(args.version)
    print(f"Removed ylem {args.version}")
    return EXIT_OK


COMMANDS = {
    "list": cmd_list,
    "install": cmd_install,
    "use": cmd_use,
    "remove": cmd_remove,
}


def main(argv=None):
    args = build_parser().parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        manager = VersionManager(settings=_settings_from_args(args))
        return COMMANDS[args.command](manager, args)
    except IntegrityError as e:
        print("=" * 60, file=sys.stderr)
        print("INTEGRITY CHECK FAILED", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        print("  The download was discarded. It may be corrupted or tampered with.",
              file=sys.stderr)
        print("=" * 60, file=sys.stderr)
        return EXIT_INTEGRITY
    except YvmError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
