"""Domain configuration loader.

Loads domain definitions (categories with required/optional fields, ingestion
language, completeness thresholds) from YAML files in config/domains/.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import ValidationError

from src.core.config import settings
from src.core.exceptions import ConfigurationError
from src.domain.models.configuration import DomainConfig

log = structlog.get_logger(__name__)

_cache: Dict[str, Dict[str, Any]] = {}


def _domains_dir(config_dir: Optional[Path] = None) -> Path:
    return (config_dir or settings.config_dir) / "domains"


def list_domains(config_dir: Optional[Path] = None) -> List[str]:
    """List available domain names (YAML file stems)."""
    domains_dir = _domains_dir(config_dir)
    if not domains_dir.exists():
        return []
    return sorted(p.stem for p in domains_dir.glob("*.yaml"))


def load_domain(name: str, config_dir: Optional[Path] = None) -> DomainConfig:
    """Load and validate a domain configuration.

    Args:
        name: Domain file stem (e.g., "village_chronicle")
        config_dir: Config root override (defaults to settings.config_dir)

    Returns:
        Validated DomainConfig

    Raises:
        FileNotFoundError: If the domain file does not exist
        ConfigurationError: If the YAML does not describe a valid domain
    """
    domain_file = _domains_dir(config_dir) / f"{name}.yaml"
    cache_key = str(domain_file)

    if cache_key in _cache:
        return DomainConfig(**_cache[cache_key])

    if not domain_file.exists():
        raise FileNotFoundError(
            f"Domain file not found: {domain_file}\n"
            f"Available domains: {', '.join(list_domains(config_dir))}"
        )

    with open(domain_file) as f:
        data = yaml.safe_load(f) or {}

    try:
        domain_config = DomainConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid domain config '{name}': {e}") from e

    _cache[cache_key] = data

    log.info(
        "domain_loaded",
        domain=domain_config.name,
        version=domain_config.version,
        category_count=len(domain_config.categories),
    )
    return domain_config


def clear_cache() -> None:
    """Clear the domain cache (mainly for testing)."""
    _cache.clear()
