# src/romupload/cli.py

import argparse
import importlib.metadata
import os
import sys
from typing import List, Optional, Sequence

from romupload import dispatcher, log_utils, provisioner, selector
from romupload.config import Settings, build_settings, load_config
from romupload.constants import APP_NAME, EXIT_FAILURE, EXIT_SUCCESS
from romupload.exceptions import MissingFileError, RomUploadError


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with exit status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def get_version() -> str:
    try:
        return importlib.metadata.version(APP_NAME)
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def create_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog=APP_NAME,
        description=(
            "Upload the latest release package and partition images of a "
            "device build with the pd uploader"
        ),
    )
    parser.add_argument(
        "target",
        metavar="TARGET",
        help=(
            "Device codename (scans out/target/product/<device>) or the path "
            "of a single file to upload (use ./NAME for a file in the current "
            "directory)"
        ),
    )
    parser.add_argument(
        "--config",
        help="YAML configuration file (default: user config directory)",
    )
    parser.add_argument(
        "--build-dir",
        help="Scan this directory instead of the device build output directory",
    )
    parser.add_argument(
        "--key-strategy",
        choices=selector.list_key_strategies(),
        help="How to find the newest package from its file name",
    )
    parser.add_argument(
        "--binary",
        dest="binary_path",
        help="Path of the pd uploader binary",
    )
    parser.add_argument(
        "--log-level",
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--log-dir",
        help="Also write a rotating log file to this directory",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the files that would be uploaded without downloading or uploading",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {get_version()}",
    )
    return parser


def _configure_logging(settings: Settings) -> None:
    if settings.log_level:
        log_utils.set_log_level(settings.log_level)
    if settings.log_dir:
        log_utils.add_file_logging(settings.log_dir, settings.log_level or "INFO")


def _is_path_like(target: str) -> bool:
    return os.sep in target or (os.altsep is not None and os.altsep in target)


def _check_target(target: str, build_dir: Optional[str]) -> None:
    if _is_path_like(target) and not build_dir and not os.path.isfile(target):
        raise MissingFileError("File not found", target)


def resolve_upload_files(
    target: str, settings: Settings, build_dir: Optional[str] = None
) -> List[str]:
    """
    Turn the TARGET argument into the list of files to upload.

    A path to an existing file is uploaded on its own and a path that is not a
    file is an error. A bare name is always a device codename, even when a
    file of that name exists in the working directory, and its build
    directory (or `build_dir`) is scanned.
    """
    _check_target(target, build_dir)
    if _is_path_like(target) and os.path.isfile(target):
        log_utils.logger.info(f"Uploading single file: {target}")
        return [target]

    directory = build_dir or selector.resolve_build_dir(
        target, settings.build_dir_template
    )
    log_utils.logger.debug(f"Scanning build directory {directory}")
    return selector.build_upload_set(directory, settings)


def run(args: argparse.Namespace) -> int:
    """
    Execute one upload run and return the process exit code.

    Stages run in order: provision the uploader, select artifacts, dispatch
    the upload. Any RomUploadError ends the run with exit code 1. Finding
    nothing to upload is a success.
    """
    try:
        config = load_config(args.config)
        settings = build_settings(
            config,
            key_strategy=args.key_strategy,
            binary_path=args.binary_path,
            log_level=args.log_level,
            log_dir=args.log_dir,
        )
        _configure_logging(settings)

        _check_target(args.target, args.build_dir)

        binary_path = settings.binary_path
        if not args.dry_run:
            binary_path = provisioner.ensure_binary(settings)

        files = resolve_upload_files(args.target, settings, args.build_dir)
        if not files:
            log_utils.logger.info("No files found for upload. Exiting.")
            return EXIT_SUCCESS

        if args.dry_run:
            log_utils.logger.info("Dry run, files that would be uploaded:")
            for path in files:
                log_utils.logger.info(f"  {path}")
            return EXIT_SUCCESS

        dispatcher.upload_files(binary_path, files)
    except RomUploadError as e:
        log_utils.logger.error(f"{type(e).__name__}: {e}")
        return EXIT_FAILURE

    return EXIT_SUCCESS


def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    Entry point for the romupload command-line interface.
    """
    # Logging is automatically initialized by importing log_utils
    parser = create_parser()
    args = parser.parse_args(argv)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
