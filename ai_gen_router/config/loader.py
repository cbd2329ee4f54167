"""
Configuration management and loading.

Handles the model configuration, YAML settings files and the environment
feature flags that pick the primary model tier.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from ai_gen_router.core.tiers import (
    ModelTier,
    ReasoningEffort,
    parse_model_tier,
    parse_reasoning_effort,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_MAX_ITERATIONS = 5


@dataclass(frozen=True)
class ModelConfig:
    """Model configuration for generation requests.

    Immutable after load; re-derived only by an explicit reload.
    """
    primary: ModelTier
    fallback_chain: Tuple[ModelTier, ...]
    reasoning_effort: ReasoningEffort
    temperature: float
    max_tokens: int

    def __post_init__(self):
        """Validate generation parameters."""
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")


@dataclass(frozen=True)
class RouterSettings:
    """Complete router settings loaded from a YAML file."""
    model: ModelConfig
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_iterations: int = DEFAULT_MAX_ITERATIONS

    def __post_init__(self):
        """Validate orchestration limits."""
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")


# Three-tier availability when the reasoning models are enabled.
# max_tokens covers reasoning + output tokens.
REASONING_MODEL_CONFIG = ModelConfig(
    primary=ModelTier.GPT_5,
    fallback_chain=(ModelTier.O3_MINI, ModelTier.GPT_4O),
    reasoning_effort=ReasoningEffort.MEDIUM,
    temperature=0.7,
    max_tokens=16000,
)

# Legacy mode: single model, no fallback
LEGACY_MODEL_CONFIG = ModelConfig(
    primary=ModelTier.GPT_4O,
    fallback_chain=(),
    reasoning_effort=ReasoningEffort.MEDIUM,
    temperature=0.7,
    max_tokens=4000,
)


def model_config_from_env(environ: Optional[Mapping[str, str]] = None) -> ModelConfig:
    """Derive the model configuration from environment feature flags.

    Reads ``GPT5_ENABLED`` (``"true"`` enables the reasoning tiers) and
    ``GPT5_REASONING_EFFORT`` (default ``medium``). An invalid effort is
    logged and replaced with ``medium`` rather than failing startup.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        ModelConfig for the active mode
    """
    env = os.environ if environ is None else environ

    if env.get("GPT5_ENABLED", "").strip().lower() != "true":
        return LEGACY_MODEL_CONFIG

    raw_effort = env.get("GPT5_REASONING_EFFORT", "medium")
    try:
        effort = parse_reasoning_effort(raw_effort)
    except ValueError:
        valid = ", ".join(e.value for e in ReasoningEffort)
        logger.warning(
            "Invalid GPT5_REASONING_EFFORT %r. Valid options: %s. Defaulting to 'medium'.",
            raw_effort, valid,
        )
        effort = ReasoningEffort.MEDIUM

    return ModelConfig(
        primary=REASONING_MODEL_CONFIG.primary,
        fallback_chain=REASONING_MODEL_CONFIG.fallback_chain,
        reasoning_effort=effort,
        temperature=REASONING_MODEL_CONFIG.temperature,
        max_tokens=REASONING_MODEL_CONFIG.max_tokens,
    )


# Process-wide configuration, loaded once
_active_config: Optional[ModelConfig] = None


def get_model_config() -> ModelConfig:
    """Get the process-wide model configuration.

    The configuration is derived from the environment on first use and
    cached until :func:`reload_model_config` is called.
    """
    global _active_config
    if _active_config is None:
        _active_config = model_config_from_env()
    return _active_config


def reload_model_config(environ: Optional[Mapping[str, str]] = None) -> ModelConfig:
    """Re-derive the process-wide model configuration."""
    global _active_config
    _active_config = model_config_from_env(environ)
    return _active_config


def load_router_settings(path: str) -> RouterSettings:
    """Load and validate router settings from a YAML file.

    Strict validation ensures no silent misconfiguration of the model
    chain that could route requests to an unintended tier.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated RouterSettings object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Router config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'model', 'orchestrator', 'feedback_loop'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    if 'model' not in raw_config:
        raise ValueError("Missing required 'model' section")

    model_data = raw_config['model']
    if not isinstance(model_data, dict):
        raise ValueError("'model' must be a dictionary")
    model = _parse_model_config(model_data)

    orchestrator_data = _optional_section(raw_config, 'orchestrator', {'timeout_seconds'})
    timeout = orchestrator_data.get('timeout_seconds', DEFAULT_TIMEOUT_SECONDS)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError("'timeout_seconds' in orchestrator must be > 0")

    loop_data = _optional_section(raw_config, 'feedback_loop', {'max_iterations'})
    max_iterations = loop_data.get('max_iterations', DEFAULT_MAX_ITERATIONS)
    if isinstance(max_iterations, bool) or not isinstance(max_iterations, int) or max_iterations < 1:
        raise ValueError("'max_iterations' in feedback_loop must be an integer >= 1")

    return RouterSettings(
        model=model,
        timeout_seconds=float(timeout),
        max_iterations=max_iterations
    )


def _optional_section(raw_config: Dict, name: str, allowed_keys: set) -> Dict:
    """Return an optional top-level section, validating its keys."""
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _parse_model_config(data: Dict) -> ModelConfig:
    """Parse and validate the model section.

    Args:
        data: Model configuration data

    Returns:
        Validated ModelConfig

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'primary', 'fallback_chain', 'reasoning_effort', 'temperature', 'max_tokens'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in model: {unknown_keys}")

    if 'primary' not in data:
        raise ValueError("Missing required 'primary' in model")
    if not isinstance(data['primary'], str):
        raise ValueError("'primary' in model must be a string")
    primary = parse_model_tier(data['primary'])

    chain_data = data.get('fallback_chain') or []
    if not isinstance(chain_data, list):
        raise ValueError("'fallback_chain' in model must be a list")
    fallback_chain = []
    for entry in chain_data:
        if not isinstance(entry, str):
            raise ValueError("'fallback_chain' entries must be strings")
        fallback_chain.append(parse_model_tier(entry))

    effort_str = data.get('reasoning_effort', ReasoningEffort.MEDIUM.value)
    if not isinstance(effort_str, str):
        raise ValueError("'reasoning_effort' in model must be a string")
    reasoning_effort = parse_reasoning_effort(effort_str)

    temperature = data.get('temperature', 0.7)
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
        raise ValueError("'temperature' in model must be a number")

    max_tokens = data.get('max_tokens', 4000)
    if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
        raise ValueError("'max_tokens' in model must be an integer")

    return ModelConfig(
        primary=primary,
        fallback_chain=tuple(fallback_chain),
        reasoning_effort=reasoning_effort,
        temperature=float(temperature),
        max_tokens=max_tokens
    )
