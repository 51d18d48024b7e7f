"""
Command-line entry point.

Usage:
    SSH_ASKPASS=qaskpass ssh-add ~/.ssh/id_ed25519
    GIT_ASKPASS=qaskpass git push
    qaskpass "Enter passphrase for /home/me/.ssh/id_rsa: "
"""

import argparse
import dataclasses
import logging
import os
import sys
from functools import partial
from pathlib import Path

from . import __version__
from .app import run
from .config import BACKENDS, AppSettings, ConfigError, get_settings
from .dialogs import AskpassTheme, QtPresenter
from .vault import open_store

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qaskpass",
        description="Qt askpass helper for ssh, ssh-add and git",
    )
    parser.add_argument("prompt", nargs="?", default=None, help="Prompt shown by the calling program")
    parser.add_argument("--backend", choices=BACKENDS, default=None,
                        help="Credential store backend (default: from settings, keyring)")
    parser.add_argument("--folder", default=None, help="Credential store folder")
    parser.add_argument("--config", default=None, help="Path to settings YAML")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(settings: AppSettings, args: argparse.Namespace) -> AppSettings:
    """CLI flags beat settings file and environment."""
    overrides = {}
    if args.backend:
        overrides["backend"] = args.backend
    if args.folder:
        overrides["folder"] = args.folder
    if not overrides:
        return settings
    try:
        return dataclasses.replace(settings, **overrides)
    except ConfigError as e:
        logger.warning(f"{e} - ignoring command-line overrides")
        return settings


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # Logging goes to stderr; stdout carries the answer
    debug = args.debug or os.environ.get("QASKPASS_DEBUG") == "1"
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    settings = get_settings(Path(args.config) if args.config else None)
    settings = apply_overrides(settings, args)

    presenter = QtPresenter(theme=AskpassTheme.from_dict(settings.theme), app_name=settings.dialog_title)
    opener = partial(open_store, master_password=presenter.ask_master_password)

    result = run(args.prompt, settings, presenter, opener)

    if result.output:
        sys.stdout.write(result.output)
        sys.stdout.flush()
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
