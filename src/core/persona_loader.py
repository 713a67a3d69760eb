"""Persona loader.

Loads persona definitions from YAML files in config/personas/.
Each persona defines the tone, formality and prompt behavior used by the
persona responder and the opening greeting.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from src.core.config import settings
from src.core.exceptions import ConfigurationError
from src.domain.models.configuration import PersonaConfig

log = structlog.get_logger(__name__)

# Module-level cache (personas don't change at runtime)
_cache: Dict[str, Dict[str, Any]] = {}


def _personas_dir(config_dir: Optional[Path] = None) -> Path:
    return (config_dir or settings.config_dir) / "personas"


def list_personas(config_dir: Optional[Path] = None) -> Dict[str, str]:
    """List all available personas.

    Returns:
        Dict mapping persona file stem to persona name
    """
    personas_dir = _personas_dir(config_dir)

    if not personas_dir.exists():
        return {}

    personas = {}
    for persona_file in sorted(personas_dir.glob("*.yaml")):
        try:
            with open(persona_file) as f:
                data = yaml.safe_load(f) or {}
            personas[persona_file.stem] = data.get("name", persona_file.stem)
        except (OSError, yaml.YAMLError) as e:
            log.warning("failed_to_read_persona", file=str(persona_file), error=str(e))

    return personas


def load_persona(persona_id: str, config_dir: Optional[Path] = None) -> PersonaConfig:
    """Load a persona configuration from YAML.

    Args:
        persona_id: Persona file stem (e.g., "chronicler")
        config_dir: Config root override (defaults to settings.config_dir)

    Returns:
        Validated PersonaConfig instance

    Raises:
        FileNotFoundError: If persona file not found
        ConfigurationError: If persona validation fails
    """
    persona_file = _personas_dir(config_dir) / f"{persona_id}.yaml"
    cache_key = str(persona_file)

    if cache_key in _cache:
        return PersonaConfig(**_cache[cache_key])

    if not persona_file.exists():
        raise FileNotFoundError(
            f"Persona file not found: {persona_file}\n"
            f"Available personas: {', '.join(list_personas(config_dir).keys())}"
        )

    with open(persona_file) as f:
        data = yaml.safe_load(f) or {}

    try:
        persona_config = PersonaConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid persona '{persona_id}': {e}") from e

    _cache[cache_key] = data

    log.info("persona_loaded", persona_id=persona_id, name=persona_config.name)
    return persona_config


def clear_cache() -> None:
    """Clear the persona cache (mainly for testing)."""
    _cache.clear()
