"""Configuration loading for the calendar sync service."""
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from processor.errors import ConfigError
from processor.models import Source, SourceKind
from scraper.fetcher import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'config.yaml'

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')
_UNIT_SECONDS = {'h': 3600, 'm': 60, 's': 1, 'ms': 0.001}


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers of seconds or strings such as "6h", "90m" or "1h30m".

    Raises:
        ConfigError: If the value is not a valid duration
    """
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if not text:
        raise ConfigError("invalid duration: empty string")
    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return float(text)

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ConfigError(f"invalid duration format: {value!r}")
    return total


@dataclass
class ScraperConfig:
    """Settings for the scrape loop."""
    interval: float = 6 * 3600
    timeout: float = 30
    max_pages: int = 10
    start_page: int = 0
    page_delay: float = 1
    fetch_retries: int = 3
    user_agent: str = DEFAULT_USER_AGENT
    timezone: str = 'Europe/Berlin'
    retention_days: Optional[int] = None


@dataclass
class ZetkinConfig:
    """Settings for the organization API."""
    cookie: Optional[str] = field(default=None, repr=False)
    organization_name: Optional[str] = None
    api_url: Optional[str] = None


@dataclass
class StorageConfig:
    events_table_name: str = 'calendar-events'
    sources_table_name: str = 'calendar-sources'


@dataclass
class AppConfig:
    """Validated application configuration."""
    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    zetkin: ZetkinConfig = field(default_factory=ZetkinConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sources: List[Source] = field(default_factory=list)
    log_level: str = 'INFO'

    def get_source(self, source_id: str) -> Optional[Source]:
        for source in self.sources:
            if source.source_id == source_id:
                return source
        return None


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> AppConfig:
    """
    Load configuration from a YAML file and environment overrides.

    Args:
        path: YAML file path (default: CONFIG_PATH or config.yaml)
        environ: Environment mapping (default: os.environ)

    Returns:
        Validated AppConfig

    Raises:
        ConfigError: If the file is unreadable or any value is invalid
    """
    environ = os.environ if environ is None else environ
    explicit = path is not None or 'CONFIG_PATH' in environ
    config_path = Path(path or environ.get('CONFIG_PATH', DEFAULT_CONFIG_PATH))

    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"failed to read config file {config_path}: {e}") from e
    elif explicit:
        raise ConfigError(f"config file not found: {config_path}")
    else:
        logger.info(f"No config file at {config_path}, using defaults")

    if not isinstance(data, dict):
        raise ConfigError("config file must contain a mapping")

    config = _build_config(data)
    _apply_env_overrides(config, environ)
    _validate(config)
    return config


def _build_config(data: Dict[str, Any]) -> AppConfig:
    scraper_data = data.get('scraper') or {}
    zetkin_data = data.get('zetkin') or {}
    storage_data = data.get('storage') or {}

    scraper = ScraperConfig()
    if 'interval' in scraper_data:
        scraper.interval = parse_duration(scraper_data['interval'])
    if 'timeout' in scraper_data:
        scraper.timeout = parse_duration(scraper_data['timeout'])
    if 'page_delay' in scraper_data:
        scraper.page_delay = parse_duration(scraper_data['page_delay'])
    for name in ('max_pages', 'start_page', 'fetch_retries', 'retention_days'):
        if scraper_data.get(name) is not None:
            setattr(scraper, name, _as_int(scraper_data[name], f'scraper.{name}'))
    if scraper_data.get('user_agent'):
        scraper.user_agent = str(scraper_data['user_agent'])
    if scraper_data.get('timezone'):
        scraper.timezone = str(scraper_data['timezone'])

    zetkin = ZetkinConfig(
        cookie=zetkin_data.get('cookie'),
        organization_name=zetkin_data.get('organization_name'),
        api_url=zetkin_data.get('api_url'),
    )

    storage = StorageConfig()
    if storage_data.get('events_table'):
        storage.events_table_name = str(storage_data['events_table'])
    if storage_data.get('sources_table'):
        storage.sources_table_name = str(storage_data['sources_table'])

    sources = []
    for site in data.get('sites') or []:
        sources.append(Source(
            source_id=str(_require(site, 'id', 'sites')),
            name=str(site.get('name') or site['id']),
            origin=str(_require(site, 'url', 'sites')),
            kind=SourceKind.HTML,
        ))
    for org in data.get('organizations') or []:
        sources.append(Source(
            source_id=str(_require(org, 'id', 'organizations')),
            name=str(org.get('name') or org['id']),
            origin=str(org['id']),
            kind=SourceKind.API,
            credential=zetkin.cookie,
            organization_name=org.get('organization_name', zetkin.organization_name),
        ))

    return AppConfig(
        scraper=scraper,
        zetkin=zetkin,
        storage=storage,
        sources=sources,
        log_level=str(data.get('log_level', 'INFO')),
    )


def _apply_env_overrides(config: AppConfig, environ: Dict[str, str]) -> None:
    if environ.get('LOG_LEVEL'):
        config.log_level = environ['LOG_LEVEL']
    if environ.get('EVENTS_TABLE_NAME'):
        config.storage.events_table_name = environ['EVENTS_TABLE_NAME']
    if environ.get('SOURCES_TABLE_NAME'):
        config.storage.sources_table_name = environ['SOURCES_TABLE_NAME']
    if environ.get('SCRAPE_INTERVAL'):
        config.scraper.interval = parse_duration(environ['SCRAPE_INTERVAL'])
    if environ.get('TIMEOUT_SECONDS'):
        config.scraper.timeout = parse_duration(environ['TIMEOUT_SECONDS'])
    if environ.get('MAX_PAGES'):
        config.scraper.max_pages = _as_int(environ['MAX_PAGES'], 'MAX_PAGES')
    if environ.get('ZETKIN_COOKIE'):
        config.zetkin.cookie = environ['ZETKIN_COOKIE']
        for source in config.sources:
            if source.kind == SourceKind.API:
                source.credential = config.zetkin.cookie


def _validate(config: AppConfig) -> None:
    scraper = config.scraper
    if scraper.interval <= 0:
        raise ConfigError("scraper.interval: must be positive")
    if scraper.timeout <= 0:
        raise ConfigError("scraper.timeout: must be positive")
    if scraper.max_pages <= 0:
        raise ConfigError("scraper.max_pages: must be positive")
    if scraper.start_page < 0:
        raise ConfigError("scraper.start_page: must not be negative")
    if scraper.fetch_retries < 1:
        raise ConfigError("scraper.fetch_retries: must be at least 1")
    if scraper.page_delay < 0:
        raise ConfigError("scraper.page_delay: must not be negative")
    if scraper.retention_days is not None and scraper.retention_days <= 0:
        raise ConfigError("scraper.retention_days: must be positive")

    try:
        ZoneInfo(scraper.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"scraper.timezone: unknown timezone {scraper.timezone!r}") from e

    seen = set()
    for source in config.sources:
        if source.source_id in seen:
            raise ConfigError(f"duplicate source id: {source.source_id}")
        seen.add(source.source_id)
        if source.kind == SourceKind.HTML and '{page}' not in source.origin:
            raise ConfigError(
                f"sites.{source.source_id}: url must contain a {{page}} placeholder"
            )


def _require(entry: Any, key: str, section: str) -> Any:
    if not isinstance(entry, dict) or not entry.get(key):
        raise ConfigError(f"{section}: every entry needs a {key!r}")
    return entry[key]


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name}: expected an integer, got {value!r}") from e
