"""Command-line entry point: one retention pass, exit status for cron / CI."""
from __future__ import annotations

import sys

from curriculo_cleanup.config import load_settings
from curriculo_cleanup.errors import CleanupError, ConfigurationError
from curriculo_cleanup.log import get_logger

log = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if argv:
        log.error("This command takes no arguments (got: %s)", " ".join(argv))
        return EXIT_CONFIG

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        log.error("Configuration error: %s", exc)
        return EXIT_CONFIG

    from curriculo_cleanup.cleanup import run

    try:
        result = run(settings)
    except CleanupError as exc:
        log.error("Cleanup failed: %s", exc)
        return EXIT_FAILURE
    except Exception:
        log.exception("Fatal error during cleanup")
        return EXIT_FAILURE

    log.info("Cleanup script finished (index written: %s)", result["index_written"])
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
