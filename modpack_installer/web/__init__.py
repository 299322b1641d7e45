"""Web UI for modpack-installer."""

import argparse
import logging
import os
from pathlib import Path

from ..paths import INSTALL_DIR_ENVVAR, AppPaths


def create_and_run(paths: AppPaths, port: int = 5000):
    """Create and run the Flask app."""
    from .app import create_app

    app = create_app(paths)
    app.run(host="127.0.0.1", port=port, debug=False, threaded=True)


def main():
    """Standalone entry point for modpack-installer-web."""
    from .. import __version__
    from ..logging_utils import configure_logging

    parser = argparse.ArgumentParser(description="modpack-installer web UI")
    parser.add_argument(
        "install_dir",
        type=Path,
        nargs="?",
        default=os.environ.get(INSTALL_DIR_ENVVAR),
        help="Modpack install directory",
    )
    parser.add_argument("--port", type=int, default=5000, help="Port (default 5000)")
    args = parser.parse_args()

    paths = AppPaths.resolve(args.install_dir)
    configure_logging(paths.log_dir)
    logging.getLogger(__name__).info("App version: %s (web)", __version__)
    create_and_run(paths, port=args.port)
