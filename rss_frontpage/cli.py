"""Command-line interface for the rss_frontpage application."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import pprint
from pathlib import Path
from typing import List, Optional

from .config import (
    AppConfig,
    build_completion_settings,
    load_secrets,
    parse_app_config,
)
from .errors import FrontpageError
from .runner import RunConfig, execute

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Show a merged front page of your feeds and summarise articles."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the main configuration XML file.",
    )

    # Overrides for logging/debugging
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )

    parser.add_argument(
        "--force-refresh",
        action="store_true",
        help="Ignore cached feed bodies (or a cached summary) and fetch again.",
    )
    parser.add_argument(
        "--summarize",
        metavar="URL",
        help="Stream an AI summary of the article at URL.",
    )
    parser.add_argument(
        "--title",
        help="Article title used in the summary prompt.",
    )
    parser.add_argument(
        "--ask",
        metavar="QUESTION",
        help="Ask a follow-up question about the article given with --summarize.",
    )
    parser.add_argument(
        "--html",
        action="store_true",
        help="Print the finished summary as sanitised HTML instead of streaming it.",
    )
    parser.add_argument(
        "--quote",
        action="store_true",
        help="Print the quote of the day.",
    )

    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config) if args.config else AppConfig()

        if args.ask and not args.summarize:
            raise ValueError("--ask requires --summarize URL.")

        # Determine logging settings (CLI overrides Config)
        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file

        configure_logging(log_level, log_file)

        secrets = load_secrets(app_config.env_file)

        config = RunConfig(
            feeds_file=app_config.feeds_file,
            force_refresh=args.force_refresh,
            summarize_url=args.summarize,
            summarize_title=args.title,
            question=args.ask,
            quote=args.quote,
            html=args.html,
            completion=build_completion_settings(app_config.completion, secrets),
            extractor=app_config.extractor,
            max_archive_items=app_config.max_archive_items,
            http_timeout=app_config.http_timeout,
            database_enabled=app_config.database.enabled,
            database_connection_string=app_config.database.connection_string,
        )

        config_dict = dataclasses.asdict(config)
        config_dict["completion"] = config.completion.masked()
        config_dict.pop("on_chunk", None)
        if config_dict.get("database_connection_string"):
            config_dict["database_connection_string"] = "***MASKED***"

        logger.info("Active Configuration:\n%s", pprint.pformat(config_dict))

        result = execute(config)
    except ValueError as exc:
        parser.error(str(exc))
    except (FrontpageError, RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    print(result.output_text)
    return result.exit_code
