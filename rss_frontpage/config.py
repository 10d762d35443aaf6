"""Configuration loading for feeds, storage and completion providers."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from xml.etree import ElementTree as ET

from .archive import MAX_ARCHIVE_ITEMS
from .completions import CompletionSettings
from .models import FeedSource
from .providers import ProviderKind

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#6366f1"

# Environment variables holding each provider's API key, checked in order.
SECRET_ENV_VARS: Dict[ProviderKind, tuple] = {
    ProviderKind.GROQ: ("GROQ_API_KEY",),
    ProviderKind.GEMINI: ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    ProviderKind.ANTHROPIC: ("ANTHROPIC_API_KEY",),
    ProviderKind.OPENAI: ("OPENAI_API_KEY",),
}


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class DatabaseConfig:
    enabled: bool = False
    connection_string: Optional[str] = None


@dataclass
class CompletionConfig:
    provider: ProviderKind = ProviderKind.GROQ
    models: Dict[ProviderKind, str] = field(default_factory=dict)


@dataclass
class AppConfig:
    feeds_file: Optional[str] = None
    env_file: Optional[str] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    extractor: str = "trafilatura"
    max_archive_items: int = MAX_ARCHIVE_ITEMS
    http_timeout: Optional[float] = None


def parse_feeds_config(path: str) -> List[FeedSource]:
    """Parse an OPML file into feed sources, in document order."""
    logger.info("Loading feed configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    body = root.find("body")
    if body is None:
        raise ValueError("feeds.xml is missing the <body> section.")

    feeds: List[FeedSource] = []

    def walk(outline: ET.Element) -> None:
        title = outline.attrib.get("title") or outline.attrib.get("text")
        feed_url = outline.attrib.get("xmlUrl")
        if outline.attrib.get("type") == "rss" and feed_url:
            index = len(feeds)
            feeds.append(
                FeedSource(
                    id=outline.attrib.get("id") or str(index + 1),
                    name=title or feed_url,
                    url=feed_url,
                    color=outline.attrib.get("color") or DEFAULT_COLOR,
                    order_index=index,
                )
            )
            logger.debug("Registered feed '%s' (id=%s)", feed_url, feeds[-1].id)
            return
        for child in outline.findall("outline"):
            walk(child)

    for outline in body.findall("outline"):
        walk(outline)

    ids = [feed.id for feed in feeds]
    if len(ids) != len(set(ids)):
        raise ValueError("Feed ids in the OPML file must be unique.")

    logger.info("Loaded %d feed endpoints from configuration", len(feeds))
    return feeds


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def parse_env_config(path: Optional[str]) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars: Dict[str, str] = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    for var in root.findall("variable"):
        name = var.attrib.get("name")
        value = var.text
        if name and value:
            env_vars[name] = value.strip()
    return env_vars


def load_secrets(
    env_file: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> Dict[ProviderKind, str]:
    """Collect provider API keys from the environment and the env XML file.

    A key may be defined in either place; defining it in both with different
    values is an error.
    """
    environ = os.environ if environ is None else environ
    file_vars = parse_env_config(env_file)
    secrets: Dict[ProviderKind, str] = {}

    for kind, names in SECRET_ENV_VARS.items():
        for name in names:
            env_value = environ.get(name)
            file_value = file_vars.get(name)
            if env_value and file_value and env_value != file_value:
                raise ValueError(f"Secret conflict for '{name}'")
            value = env_value or file_value
            if value:
                secrets[kind] = value
                break

    logger.info(
        "Loaded API keys for: %s",
        ", ".join(kind.value for kind in secrets) or "no providers",
    )
    return secrets


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    feeds_text = root.findtext("feeds")
    feeds_file = (
        _resolve_path(config_path, feeds_text.strip()) if feeds_text else None
    )

    env_text = root.findtext("env")
    env_file = _resolve_path(config_path, env_text.strip()) if env_text else None

    # Logging
    log_node = root.find("logging")
    logging_config = LoggingConfig()
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    # Database
    db_node = root.find("database")
    db_config = DatabaseConfig()
    if db_node is not None:
        db_config.enabled = db_node.findtext("enabled", "false").lower() == "true"
        db_config.connection_string = db_node.findtext("connection-string")

    # Completion providers
    completion_node = root.find("completion")
    completion = CompletionConfig()
    if completion_node is not None:
        provider = completion_node.attrib.get("provider")
        if provider:
            completion.provider = _provider_kind(provider)
        for model_node in completion_node.findall("model"):
            kind = _provider_kind(model_node.attrib.get("provider", ""))
            if model_node.text and model_node.text.strip():
                completion.models[kind] = model_node.text.strip()

    timeout_text = root.findtext("http-timeout")
    max_items = int(root.findtext("max-archive-items", str(MAX_ARCHIVE_ITEMS)))

    return AppConfig(
        feeds_file=feeds_file,
        env_file=env_file,
        logging=logging_config,
        database=db_config,
        completion=completion,
        extractor=root.findtext("extractor", "trafilatura"),
        max_archive_items=max_items,
        http_timeout=float(timeout_text) if timeout_text else None,
    )


def build_completion_settings(
    completion: CompletionConfig, secrets: Mapping[ProviderKind, str]
) -> CompletionSettings:
    return CompletionSettings(
        provider=completion.provider,
        keys=dict(secrets),
        models=dict(completion.models),
    )


def _provider_kind(value: str) -> ProviderKind:
    try:
        return ProviderKind(value.strip().lower())
    except ValueError:
        supported = ", ".join(kind.value for kind in ProviderKind)
        raise ValueError(f"Unsupported provider: {value}. Supported: {supported}")
