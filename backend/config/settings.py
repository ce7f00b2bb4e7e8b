"""
Configuration Management for the registry browser
Centralizes all environment-based configuration and logging setup
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import List, Optional, Union


ENV_PREFIX = 'REGISTRY_BROWSER_'
DEFAULT_REGISTRY_URL = 'http://localhost:5000'


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f'{ENV_PREFIX}{name}', default)


def _env_flag(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None):
    """Configure application logging, with a rotating file when log_dir is set"""
    level_name = (level or _env('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    log_dir = log_dir or _env('LOG_DIR')

    root_logger = logging.getLogger()

    # Close and clear any existing handlers so ours are the only ones
    for handler in root_logger.handlers[:]:  # Copy list to avoid modification during iteration
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, mode=0o700, exist_ok=True)
        # Max 10MB per file, keep 14 backups
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'registry-browser.log'),
            maxBytes=10*1024*1024,
            backupCount=14,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # aiohttp logs every connection at DEBUG
    logging.getLogger('aiohttp').setLevel(max(log_level, logging.INFO))


def normalize_registry_url(url: str) -> str:
    """Trim whitespace and trailing slashes: ' https://r.io// ' → 'https://r.io'"""
    return url.strip().rstrip('/')


def parse_registry_servers(value: Union[str, List[str], None]) -> List[str]:
    """
    Parse a registry server list.

    Accepts a comma-separated string or a list. Entries are normalized,
    empties and duplicates dropped, order preserved.
    """
    if value is None:
        return []
    if isinstance(value, str):
        entries = value.split(',')
    elif isinstance(value, (list, tuple)):
        entries = list(value)
    else:
        raise TypeError('registry servers must be a string or a list')

    servers = []
    for entry in entries:
        url = normalize_registry_url(str(entry))
        if url and url not in servers:
            servers.append(url)
    return servers


def add_registry_server(servers: List[str], url: str) -> List[str]:
    """Return a new list with url first (moved there if already present)."""
    url = normalize_registry_url(url)
    return [url] + [server for server in servers if server != url]


def remove_registry_server(servers: List[str], url: str) -> List[str]:
    url = normalize_registry_url(url)
    return [server for server in servers if server != url]


def get_registry_url() -> str:
    """First configured registry server, or the local default."""
    servers = parse_registry_servers(_env('REGISTRY_URL'))
    return servers[0] if servers else DEFAULT_REGISTRY_URL


def get_catalog_limit() -> int:
    return int(_env('CATALOG_ELEMENTS_LIMIT', '100'))


class AppConfig:
    """Main application configuration"""

    # Registry
    REGISTRY_URL = get_registry_url()
    REGISTRY_SERVERS = parse_registry_servers(_env('REGISTRY_URL'))
    CATALOG_ELEMENTS_LIMIT = get_catalog_limit()

    # Display
    SHOW_CONTENT_DIGEST = _env_flag('SHOW_CONTENT_DIGEST', True)
    SHOW_CATALOG_NB_TAGS = _env_flag('SHOW_CATALOG_NB_TAGS', True)

    # Transport
    ORIGIN = _env('ORIGIN')
    WITH_CREDENTIALS = _env_flag('WITH_CREDENTIALS', False)
    USERNAME = _env('USERNAME')
    PASSWORD = _env('PASSWORD')

    # Logging
    LOG_LEVEL = _env('LOG_LEVEL', 'INFO')
    LOG_DIR = _env('LOG_DIR')

    @classmethod
    def validate(cls):
        """Validate configuration"""
        if not cls.REGISTRY_URL.startswith(('http://', 'https://')):
            raise ValueError(f"Registry URL must start with http:// or https://: {cls.REGISTRY_URL}")

        if cls.CATALOG_ELEMENTS_LIMIT < 1:
            raise ValueError(f"Catalog elements limit must be at least 1: {cls.CATALOG_ELEMENTS_LIMIT}")

        return True
