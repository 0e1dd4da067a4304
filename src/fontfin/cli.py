# src/fontfin/cli.py

import argparse
import importlib.metadata
import os
import signal
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from fontfin import config as config_module
from fontfin import log_utils
from fontfin.constants import (
    APP_NAME,
    LOCK_INSTALLING,
    LOCK_REINSTALLING,
    LOCK_REMOVING,
    LOCK_UPDATING,
)
from fontfin.download.files import remove_path
from fontfin.download.interfaces import InstallResult
from fontfin.download.lock import StateLock
from fontfin.download.orchestrator import InstallOrchestrator, RunOptions
from fontfin.exceptions import FontfinError, LockHeldError
from fontfin.progress import RichProgressSink, create_progress

DISABLE_FILE_LOGGING_ENV_VAR = "FONTFIN_DISABLE_FILE_LOGGING"

# command -> (orchestrator method name, lock state, summary verb)
MUTATING_COMMANDS = {
    "install": ("install", LOCK_INSTALLING, "Install"),
    "reinstall": ("reinstall", LOCK_REINSTALLING, "Reinstall"),
    "update": ("update", LOCK_UPDATING, "Update"),
    "remove": ("remove", LOCK_REMOVING, "Remove"),
}


def get_version() -> str:
    try:
        return importlib.metadata.version(APP_NAME)
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _confirm(prompt: str, args: argparse.Namespace) -> bool:
    """
    Ask a yes/no question, honouring --yes and --no.

    Returns:
        bool: `True` only on an explicit yes.
    """
    if args.yes:
        return True
    if args.no:
        return False
    try:
        answer = input(f"{prompt} [y/n] (default: no): ").strip().lower()
    except EOFError:
        return False
    return answer in ("y", "yes")


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--install-dir", dest="install_dir", help="Directory fonts are installed into"
    )
    common.add_argument(
        "--cache-timeout",
        dest="cache_timeout",
        type=int,
        help="Minutes a cached page stays fresh",
    )
    common.add_argument(
        "-i", "--reinstall", action="store_true", help="Install even if up to date"
    )
    common.add_argument(
        "-r", "--refresh", action="store_true", help="Ignore cached pages"
    )
    common.add_argument(
        "-c",
        "--cache-only",
        dest="cache_only",
        action="store_true",
        help="Use cached pages regardless of their age",
    )
    common.add_argument(
        "-v", "--verbose", action="store_true", help="Show URLs, files and debug logs"
    )
    common.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Remove whole directories; ignore the state lock when cleaning",
    )
    answer = common.add_mutually_exclusive_group()
    answer.add_argument("-y", "--yes", action="store_true", help="Answer yes to prompts")
    answer.add_argument("-n", "--no", action="store_true", help="Answer no to prompts")

    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="fontfin - a font package manager",
    )
    subparsers = parser.add_subparsers(dest="command")

    install = subparsers.add_parser(
        "install", aliases=["get"], parents=[common], help="Install fonts"
    )
    install.add_argument("filters", nargs="+", metavar="NAME[:TAG]")

    reinstall = subparsers.add_parser(
        "reinstall", parents=[common], help="Reinstall installed fonts"
    )
    reinstall.add_argument("filters", nargs="+", metavar="NAME[:TAG]")

    update = subparsers.add_parser(
        "update",
        aliases=["upgrade", "up"],
        parents=[common],
        help="Update installed fonts (all when no names are given)",
    )
    update.add_argument("filters", nargs="*", metavar="NAME[:TAG]")

    remove = subparsers.add_parser(
        "remove", aliases=["uninstall", "rm"], parents=[common], help="Remove fonts"
    )
    remove.add_argument("filters", nargs="+", metavar="NAME")

    list_parser = subparsers.add_parser(
        "list", aliases=["ls"], parents=[common], help="List fonts"
    )
    list_parser.add_argument(
        "what",
        nargs="?",
        default="installed",
        choices=["installed", "available", "all"],
    )

    clean = subparsers.add_parser(
        "clean", aliases=["clear"], parents=[common], help="Remove cached data"
    )
    clean.add_argument(
        "what", nargs="?", default="all", choices=["all", "pages", "staging", "state"]
    )

    config = subparsers.add_parser(
        "config", parents=[common], help="Show or reset the configuration"
    )
    config.add_argument(
        "what", nargs="?", default="show", choices=["show", "default", "delete"]
    )

    subparsers.add_parser("version", parents=[common], help="Display fontfin version")
    return parser


COMMAND_ALIASES = {
    "get": "install",
    "upgrade": "update",
    "up": "update",
    "uninstall": "remove",
    "rm": "remove",
    "ls": "list",
    "clear": "clean",
}


def _load_config(args: argparse.Namespace) -> Dict[str, Any]:
    """Load the configuration and apply command-line overrides."""
    config = config_module.load_config()
    if args.install_dir:
        config["INSTALL_DIR"] = args.install_dir
    if args.cache_timeout is not None:
        config["CACHE_TIMEOUT"] = args.cache_timeout
    if args.verbose:
        for key in config_module.BOOLEAN_KEYS:
            config[key] = True
    return config_module.validate_config(config)


def _configure_logging(args: argparse.Namespace, config: Dict[str, Any]) -> None:
    level = "DEBUG" if args.verbose else str(config.get("LOG_LEVEL", "INFO"))
    if level.upper() != "INFO" or args.verbose:
        log_utils.set_log_level(level)
    if not os.environ.get(DISABLE_FILE_LOGGING_ENV_VAR):
        log_utils.add_file_logging(Path(config_module.get_log_dir()), level)


def _make_orchestrator(
    args: argparse.Namespace,
    config: Dict[str, Any],
    sink_factory=None,
) -> InstallOrchestrator:
    return InstallOrchestrator(
        config,
        installers_dir=config_module.get_installers_dir(),
        cache_dir=config_module.get_cache_dir(),
        installed_path=config_module.get_installed_file(),
        options=RunOptions(
            refresh=args.refresh,
            reinstall=args.reinstall,
            force=args.force,
            cache_only=args.cache_only,
        ),
        sink_factory=sink_factory,
    )


def _report_files(results: List[InstallResult], config: Dict[str, Any]) -> None:
    for result in results:
        if not result.success or result.was_skipped:
            continue
        if config.get("VERBOSE_URLS") and result.url:
            log_utils.logger.info(f"{result.name}: {result.url}")
        if config.get("VERBOSE_FILES") and result.files:
            for file in result.files:
                log_utils.logger.info(f"  {file}")


def run_mutating_command(
    command: str, args: argparse.Namespace, config: Dict[str, Any]
) -> int:
    """
    Run install, reinstall, update or remove under the install state lock.

    The lock file is checked before any work and written for the duration of the
    run. SIGINT requests cooperative cancellation instead of killing the process.

    Returns:
        int: Process exit status; non-zero if the lock was held or any item failed.
    """
    method_name, lock_value, verb = MUTATING_COMMANDS[command]
    lock = StateLock(config_module.get_lock_file())

    if command == "remove" and not _confirm(
        f"Remove {', '.join(args.filters)}?", args
    ):
        log_utils.logger.info("Nothing removed")
        return 0

    try:
        InstallOrchestrator.check_lock(lock.read())
    except LockHeldError as e:
        log_utils.logger.error(f"{e}")
        log_utils.logger.error(f"Run '{APP_NAME} clean state' if no other run is active")
        return 1

    start_time = time.time()
    progress = create_progress()
    orchestrator = _make_orchestrator(
        args, config, sink_factory=lambda name: RichProgressSink(progress, name)
    )
    previous_handler = signal.signal(
        signal.SIGINT, lambda _signum, _frame: orchestrator.cancel()
    )
    lock.acquire(lock_value)
    try:
        with progress:
            results = getattr(orchestrator, method_name)(args.filters)
    finally:
        lock.release()
        signal.signal(signal.SIGINT, previous_handler)

    _report_files(results, config)
    if not results:
        log_utils.logger.info("Nothing to do")
        return 0
    success = orchestrator.log_summary(results, verb, start_time)
    if not success:
        log_utils.logger.error(f"One or more fonts failed to {verb.lower()}")
    return 0 if success else 1


def run_list(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    orchestrator = _make_orchestrator(args, config)
    if args.what in ("installed", "all"):
        print("Installed:")
        for name in orchestrator.installed.names():
            entry = orchestrator.installed.get(name)
            if config.get("VERBOSE_LIST") and entry is not None:
                print(f"  {name}  {entry.dir}  {entry.url}")
            else:
                print(f"  {name}")
    if args.what in ("available", "all"):
        print("Available:")
        for name in orchestrator.available_installers():
            print(f"  {name}")
    return 0


def run_clean(args: argparse.Namespace) -> int:
    """
    Remove cached pages, staging areas and/or the state lock.

    Everything except `state` is refused while the lock is held, unless --force is given.
    """
    lock = StateLock(config_module.get_lock_file())
    state = lock.read()
    if state is not None and args.what != "state" and not args.force:
        log_utils.logger.error(
            f"Install state is locked ({state}); use --force to clean anyway"
        )
        return 1

    def clean_state() -> None:
        if not lock.clear():
            log_utils.logger.debug("No state lock to clear")

    targets: Dict[str, Callable[[], None]] = {
        "pages": lambda: remove_path(config_module.get_pages_dir()),
        "staging": lambda: remove_path(config_module.get_staging_dir()),
        "state": clean_state,
    }
    selected = list(targets) if args.what == "all" else [args.what]
    if args.what == "all" and not _confirm("Remove all cached data?", args):
        log_utils.logger.info("Nothing removed")
        return 0

    for name in selected:
        try:
            targets[name]()
        except (OSError, FontfinError) as e:
            log_utils.logger.error(f"Failed to clean {name}: {e}")
            return 1
        log_utils.logger.info(f"Cleaned {name}")
    return 0


def run_config(args: argparse.Namespace) -> int:
    path = config_module.get_config_file()
    if args.what == "show":
        config = config_module.load_config()
        print(f"# {path}")
        print(yaml.safe_dump(config, default_flow_style=False, sort_keys=False), end="")
        print(f"# installers: {config_module.get_installers_dir()}")
        print(f"# cache: {config_module.get_cache_dir()}")
        return 0
    if args.what == "default":
        if config_module.config_exists(path) and not _confirm(
            f"Overwrite {path}?", args
        ):
            return 0
        config_module.write_default_config(path)
        return 0
    if not config_module.delete_config(path):
        log_utils.logger.info(f"No configuration at {path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the fontfin command-line interface.

    Parses arguments and dispatches to install, reinstall, update, remove, list,
    clean, config and version.

    Returns:
        int: Process exit status.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    command = COMMAND_ALIASES.get(args.command, args.command)

    if command is None:
        parser.print_help()
        return 0
    if command == "version":
        print(f"{APP_NAME} {get_version()}")
        return 0

    try:
        if command == "config":
            return run_config(args)
        config = _load_config(args)
        _configure_logging(args, config)
        if command in MUTATING_COMMANDS:
            return run_mutating_command(command, args, config)
        if command == "list":
            return run_list(args, config)
        return run_clean(args)
    except FontfinError as e:
        log_utils.logger.error(f"{e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
