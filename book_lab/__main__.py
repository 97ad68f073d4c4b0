"""
Main entry point for Book Lab application.
"""

import re
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from book_lab.core.config import Settings


def setup_logging(settings: Settings, level: Optional[str] = None):
    """Set up console and rotating file logging."""
    level = level or settings.log.level

    # Remove default logger
    logger.remove()

    # Add console logger
    logger.add(
        sys.stderr,
        level=level,
        format=settings.log.format
    )

    # Add file logger, without color markup
    log_path = Path(settings.log.path).expanduser()
    log_path.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_path / "book_lab.log",
        rotation=settings.log.rotation,
        retention=settings.log.retention,
        level=level,
        format=re.sub(r"</?(green|level|cyan)>", "", settings.log.format),
    )


def main():
    """Main entry point."""
    from book_lab.cli.main import main as cli_main

    sys.exit(cli_main())


if __name__ == "__main__":
    main()
