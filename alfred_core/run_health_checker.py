# alfred_core/run_health_checker.py
"""Run the VM health monitor as a standalone process."""

import logging
import sys

from alfred_core.container import get_health_monitor

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    logger.info("Starting VM Health Monitor")

    try:
        monitor = get_health_monitor()
        monitor.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
