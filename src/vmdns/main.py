#!/usr/bin/env python3
"""
VM-DNS - Command Line Entry Points

vm-start <vm-name>      Start a VM, discover its IP, reconcile its A record
vm-clone <new-vm-name>  Clone the template, discover its IP, set its hostname

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

# Standard library imports
import argparse
import getpass
import logging
import os
import sys
from typing import List, Optional

from . import __version__, __software_name__
from .application import Application
from .config import (
    ConfigManager,
    SYSTEM_CONFIG_PATH,
    candidate_config_paths,
    encryption_key_path,
    find_config_file,
    read_config_file,
)
from .encryption import EncryptionManager
from .exceptions import VmDnsError
from .logger import LoggerManager

LOGGER_NAME = "vmdns"

WORKFLOWS = {
    "start": ("Start a libvirt VM, discover its IP address and sync its Cloudflare A record", "vm-name"),
    "clone": ("Clone the template VM, discover the clone's IP address and set its hostname", "new-vm-name"),
}

################################################################################
# ARGUMENT PARSING - Command-Line Interface
################################################################################

def parse_arguments(workflow: str, argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments for one workflow. The VM name is optional only with --encrypt-token."""
    description, metavar = WORKFLOWS[workflow]
    parser = argparse.ArgumentParser(
        prog=f"vm-{workflow}",
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s web1                     # Work on VM 'web1'
  %(prog)s --config ./config.toml web1
  %(prog)s --encrypt-token          # Encrypt an API token for the config file
        """
    )

    parser.add_argument('vm_name', nargs='?', metavar=metavar, help='VM name (left-hand label of its DNS name)')
    parser.add_argument('-v', '--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('-c', '--config', type=str, default=None, help='Path to config.toml (default: search /etc/vm-dns and tool directory)')
    parser.add_argument('-d', '--debug', action='store_true', help='Enable debug output')
    parser.add_argument('--encrypt-token', action='store_true', help='Prompt for an API token and print it encrypted')

    args = parser.parse_args(argv)
    args.usage = parser.format_usage().strip()
    return args

################################################################################
# COMMAND HANDLERS
################################################################################

def _tool_dir() -> str:
    return os.path.dirname(os.path.realpath(sys.argv[0]))


def handle_encrypt_token(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Encrypt a token with the key file the selected config decrypts with. Returns exit code."""
    config_path = find_config_file(candidate_config_paths(args.config, tool_dir=_tool_dir()))
    if config_path:
        key_file = encryption_key_path(read_config_file(config_path), os.path.dirname(os.path.abspath(config_path)))
    else:
        config_dir = os.path.dirname(os.path.abspath(args.config)) if args.config else os.path.dirname(SYSTEM_CONFIG_PATH)
        key_file = encryption_key_path({}, config_dir)

    token = getpass.getpass("Cloudflare API token: ").strip()
    if not token:
        logger.error("No token entered")
        return 1

    manager = EncryptionManager(key_file, logger=logger)
    print(f'api_token_encrypted = "{manager.encrypt(token)}"')
    logger.info(f"Add the line above to the [cloudflare] section of {config_path or 'your config.toml'} (key: {key_file})")
    return 0


def run_workflow(workflow: str, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Load config and run the requested workflow. Returns exit code (0=success)."""
    config = ConfigManager.discover(candidate_config_paths(args.config, tool_dir=_tool_dir()), workflow=workflow)

    LoggerManager.reconfigure(
        LOGGER_NAME,
        level=None if args.debug else getattr(logging, str(config.log_level).upper(), logging.INFO),
        use_colors=config.console_colors and sys.stdout.isatty(),
    )

    app = Application(config, logger)
    if workflow == "start":
        app.run_start(args.vm_name)
    else:
        app.run_clone(args.vm_name)
    return 0

################################################################################
# MAIN APPLICATION - Entry Point and Initialization
################################################################################

def main(workflow: str = "start", argv: Optional[List[str]] = None) -> int:
    """Entry point shared by both workflows. Returns exit code."""
    args = parse_arguments(workflow, argv)
    logger = LoggerManager.get_logger(LOGGER_NAME, level=logging.DEBUG if args.debug else None)

    try:
        if args.encrypt_token:
            return handle_encrypt_token(args, logger)

        if not args.vm_name:
            print(args.usage)
            logger.error(f"Missing argument: {WORKFLOWS[workflow][1]}")
            return 1

        logger.debug(f"{__software_name__} {__version__} ({workflow})")
        return run_workflow(workflow, args, logger)

    except VmDnsError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1


def start_main() -> None:
    sys.exit(main("start"))


def clone_main() -> None:
    sys.exit(main("clone"))


def module_main(argv: Optional[List[str]] = None) -> int:
    """`python -m vmdns {start,clone} ...`: pick the workflow from the first argument."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] not in WORKFLOWS:
        print(f"usage: python -m vmdns {{{','.join(WORKFLOWS)}}} [options] <vm-name>")
        return 1
    return main(argv[0], argv[1:])


if __name__ == "__main__":
    start_main()
