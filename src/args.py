"""Argument parsing functionality for dotbind."""

import argparse
import os

from constants import Constants


def _add_common(parser):
    """Flags shared by every subcommand."""
    parser.add_argument("--root",
                        dest="ROOT",
                        help="Install root to scan (default: $DOTBIND_ROOT or ~/.dotnet)",
                        action="store", type=str,
                        default=None)
    parser.add_argument("--state-dir",
                        dest="STATE_DIR",
                        help="Directory holding pins and lock files (default: $DOTBIND_STATE_DIR or <root>/metadata)",
                        action="store", type=str,
                        default=None)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("--lock-timeout",
                        dest="LOCK_TIMEOUT",
                        help="Seconds to wait for a lock before giving up",
                        action="store",
                        type=float)
    parser.add_argument("--retries",
                        dest="RETRIES",
                        help="Attempts for transient filesystem errors",
                        action="store",
                        type=int)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="Overall deadline for the command in seconds",
                        action="store",
                        type=float)
    parser.add_argument("--json",
                        dest="JSON",
                        help="Print machine readable JSON",
                        action="store_true")


def _add_request(parser):
    """Flags forming the command-line configuration layer."""
    parser.add_argument("-k", "--kind",
                        dest="KIND",
                        help="Component kind to resolve",
                        action="store", type=str.lower,
                        choices=Constants.RESOLVABLE_KINDS,
                        default="sdk")
    parser.add_argument("--framework",
                        dest="FRAMEWORK",
                        help=f"Runtime framework name (default: {Constants.DEFAULT_FRAMEWORK})",
                        action="store", type=str)
    parser.add_argument("--band",
                        dest="BAND",
                        help="Feature band for workload set resolution, e.g. 8.0.100",
                        action="store", type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to a global.json style configuration file (default: searched upward from cwd)",
                        action="store", type=str)
    parser.add_argument("-v", "--version",
                        dest="VERSION",
                        help="Requested floor version",
                        action="store", type=str)
    parser.add_argument("--roll-forward",
                        dest="ROLL_FORWARD",
                        help="Roll-forward policy (disable, patch, latestPatch, feature, ... latestMajor)",
                        action="store", type=str)
    parser.add_argument("--roll-forward-on-no-candidate-fx",
                        dest="ROLL_FORWARD_LEGACY",
                        help="Legacy numeric roll-forward setting (0, 1 or 2)",
                        action="store", type=str)
    allow = parser.add_mutually_exclusive_group()
    allow.add_argument("--allow-prerelease",
                       dest="ALLOW_PRERELEASE",
                       help="Consider prerelease installs",
                       action="store_const", const=True, default=None)
    allow.add_argument("--no-allow-prerelease",
                       dest="ALLOW_PRERELEASE",
                       help="Ignore prerelease installs unless a prerelease is requested",
                       action="store_const", const=False)
    parser.add_argument("--scope",
                        dest="SCOPE",
                        help="Pin scope (feature band or directory) to honor",
                        action="store", type=str)


def build_parser():
    """Build the argument parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog="dotbind",
        description=(
            "dotbind - Resolve, pin and collect installed runtime, SDK and workload versions"
        ),
        add_help=True,
    )
    sub = parser.add_subparsers(dest="action", metavar="COMMAND")
    sub.required = True

    resolve = sub.add_parser("resolve", help="Select the installed version for a request")
    _add_common(resolve)
    _add_request(resolve)

    listing = sub.add_parser("list", help="List installed versions in order")
    _add_common(listing)
    listing.add_argument("-k", "--kind",
                         dest="KIND",
                         help="Component kind to list",
                         action="store", type=str.lower,
                         choices=Constants.SUPPORTED_KINDS,
                         default="sdk")
    listing.add_argument("--component",
                         dest="COMPONENT",
                         help="Only list one framework or manifest id",
                         action="store", type=str)

    pin = sub.add_parser("pin", help="Read or change pinned versions")
    pin_sub = pin.add_subparsers(dest="pin_action", metavar="PIN_COMMAND")
    pin_sub.required = True
    for name, text in (("get", "Show the pin of a scope"),
                       ("set", "Pin a scope to a version"),
                       ("clear", "Remove the pin of a scope"),
                       ("list", "Show every pin")):
        p = pin_sub.add_parser(name, help=text)
        _add_common(p)
        if name != "list":
            p.add_argument("--scope",
                           dest="SCOPE",
                           help="Feature band (8.0.100) or directory the pin applies to",
                           action="store", type=str,
                           required=True)
        if name == "set":
            p.add_argument("-v", "--version",
                           dest="VERSION",
                           help="Version to pin (omit with --latest)",
                           action="store", type=str)
            p.add_argument("--latest",
                           dest="LATEST",
                           help="Follow the latest installed version by removing the pin",
                           action="store_true")
            p.add_argument("-k", "--kind",
                           dest="KIND",
                           help="Component kind the pin applies to",
                           action="store", type=str.lower,
                           choices=Constants.RESOLVABLE_KINDS)
            p.add_argument("--manifest",
                           dest="MANIFESTS",
                           help="Manifest override ID=VERSION/BAND (repeatable)",
                           action="append", type=str,
                           default=[])

    gc = sub.add_parser("gc", help="Remove installs no pin or default selection refers to")
    _add_common(gc)
    gc.add_argument("-k", "--kind",
                    dest="KINDS",
                    help="Restrict collection to a kind (repeatable)",
                    action="append", type=str.lower,
                    choices=Constants.COLLECTABLE_KINDS,
                    default=[])
    gc.add_argument("--dry-run",
                    dest="DRY_RUN",
                    help="Report what would be removed without removing it",
                    action="store_true")
    gc.add_argument("--error-on-warnings",
                    dest="ERROR_ON_WARNINGS",
                    help="Exit with a non-zero status code if any version was skipped.",
                    action="store_true")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    args = build_parser().parse_args(argv)
    if getattr(args, "ROOT", None) is None:
        args.ROOT = os.environ.get(Constants.ENV_ROOT) or Constants.DEFAULT_ROOT
    if getattr(args, "STATE_DIR", None) is None:
        args.STATE_DIR = (os.environ.get(Constants.ENV_STATE_DIR)
                          or os.path.join(args.ROOT, Constants.METADATA_DIR))
    return args
