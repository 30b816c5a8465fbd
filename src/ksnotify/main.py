# src/ksnotify/main.py
import argparse
import logging
import os
import sys
from typing import List, Optional, TextIO

from dotenv import load_dotenv # For local development using .env file

from . import __version__
from .ci import load_ci_context
from .classifier import classify_changes
from .diff_parser import parse_diff_text
from .exceptions import KsnotifyError
from .models import ReconcileAction
from .notifier import Notifier
from .plugin_config import CI_KINDS, VALID_LOG_LEVELS, PluginConfig, load_plugin_config
from .scm_client import get_scm_client
from .template import render_report

# Global logger for the module
logger = logging.getLogger("ksnotify") # Use a named logger


def setup_logging(log_level_str: str):
    """Configures basic logging. Logs go to stderr, stdout is kept for the local report."""
    numeric_level = getattr(logging, log_level_str.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
        logger.warning(f"Invalid log level '{log_level_str}'. Defaulting to INFO.")

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr,
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ksnotify",
        description="Read `kubectl diff` output from stdin and post it as a pull/merge request comment.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--ci", choices=CI_KINDS, help="CI system ksnotify runs on")
    parser.add_argument("--notifier", choices=CI_KINDS, help="Where to post the report (defaults to --ci)")
    parser.add_argument("--suppress-skaffold", action="store_true", default=None,
                        help="Hide skaffold.dev/run-id label changes")
    parser.add_argument("--patch", action="store_true", default=None,
                        help="Update the comment of a previous run for the same target instead of adding one")
    parser.add_argument("--target", help="Label of the deploy target, shown in the title")
    parser.add_argument("--ignore-tag-images", help="Comma separated list of images (accepted, not applied)")
    parser.add_argument("--log-level", choices=VALID_LOG_LEVELS, type=str.upper)
    return parser


def config_from_args(args: argparse.Namespace) -> PluginConfig:
    overrides = {
        "ci": args.ci,
        "notifier": args.notifier,
        "suppress_skaffold": args.suppress_skaffold,
        "patch": args.patch,
        "target": args.target,
        "ignore_tag_images": [p.strip() for p in args.ignore_tag_images.split(",") if p.strip()]
        if args.ignore_tag_images else None,
        "log_level": args.log_level,
    }
    return load_plugin_config(config_path=args.config, overrides=overrides)


def run(config: PluginConfig, diff_text: str) -> ReconcileAction:
    """
    Runs the whole pipeline for one invocation: parse, classify, render, notify.
    Any error is propagated to the caller.
    """
    # Resolve CI variables and credentials before anything touches the network
    context = load_ci_context(config.ci)
    client = get_scm_client(config, context)

    change_set = parse_diff_text(diff_text, suppress_skaffold=config.suppress_skaffold)
    report = classify_changes(change_set)
    rendered = render_report(report, context.job_url, config.target)

    return Notifier(client, context).notify(rendered, config.patch)


def main_cli(argv: Optional[List[str]] = None, stdin: Optional[TextIO] = None) -> int:
    """
    CLI entry point. Loads .env for local dev.
    """
    # In a real CI environment, variables are injected by the system.
    if os.path.exists(".env"):
        load_dotenv(override=False)

    args = build_arg_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        setup_logging(config.log_level)
        logger.info(f"Starting ksnotify {__version__}")

        # read all of stdin before parsing starts
        diff_text = (stdin or sys.stdin).read()
        logger.debug(f"Read {len(diff_text)} chars of diff from stdin")

        action = run(config, diff_text)
        logger.info(f"ksnotify finished: {action.kind.value}")
        return 0
    except KsnotifyError as e:
        logger.error(f"ksnotify: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("ksnotify interrupted by user (KeyboardInterrupt).")
        return 130 # Standard exit code for Ctrl+C
    except Exception as e:
        logger.critical(f"Unhandled exception: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main_cli())
