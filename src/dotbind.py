"""dotbind - installed runtime, SDK and workload version binder

    Resolves which installed version to bind to, manages pins and
    collects unreferenced installs.

    Returns:
        int: Exit code (see constants.ExitCodes)
"""
import logging
import sys

import yaml

from constants import ExitCodes
from args import parse_args
from cli_config import apply_runtime_overrides, deadline_from_args, setup_logging
from cli_gc import run_gc
from cli_pin import run_pin
from cli_resolve import run_list, run_resolve
from common.logging_utils import extra_context, is_debug_enabled
from versioning.errors import DotbindError

COMMANDS = {
    "resolve": run_resolve,
    "list": run_list,
    "pin": run_pin,
    "gc": run_gc,
}


def main(argv=None):
    """Main function of the program."""
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    try:
        setup_logging(args)
        apply_runtime_overrides(args)
        deadline = deadline_from_args(args)
    except yaml.YAMLError as e:
        logging.error("Tool configuration could not be parsed: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
    except ValueError as e:
        logging.error("%s", e)
        sys.exit(ExitCodes.USAGE_ERROR.value)
    except OSError as e:
        logging.error("File error: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.action)
        )

    try:
        code = COMMANDS[args.action](args, deadline)
    except DotbindError as e:
        logging.error("%s", e)
        sys.exit(e.exit_code.value)
    except KeyboardInterrupt:
        logging.error("Interrupted.")
        sys.exit(ExitCodes.CANCELLED.value)
    except OSError as e:
        logging.error("File error: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action=args.action, outcome=code)
        )
    sys.exit(code)


if __name__ == "__main__":
    main()
