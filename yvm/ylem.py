"""
ylem — runs the active ylem compiler

Every argument is passed through unchanged and the compiler's exit
status becomes ours. Which compiler runs is decided by `yvm use`.

Exit codes: the compiler's own, 1 when no usable active version exists,
130 interrupted.
"""

import logging
import subprocess
import sys

from yvm_core import Settings, VersionManager, YvmError

from .cli import EXIT_FAILURE, EXIT_INTERRUPTED

logger = logging.getLogger(__name__)


def main(argv=None):
    args = sys.argv[1:] if argv is None else list(argv)
    logging.basicConfig(level=logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        exe = VersionManager(settings=Settings.from_env()).active_executable()
    except YvmError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    logger.debug("Running %s", exe)
    try:
        returncode = subprocess.call([exe] + args)
    except OSError as e:
        print(f"Error: cannot run {exe}: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    # Killed by a signal: report it the way a shell does
    if returncode < 0:
        return 128 - returncode
    return returncode


if __name__ == "__main__":
    sys.exit(main())
