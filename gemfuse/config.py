"""
GemFuse Configuration System
=============================

Central configuration using Pydantic Settings. Supports:
- Environment variables (GEMFUSE_ prefix, nested with "__")
- .env file loading
- YAML config file overrides

Fusion thresholds live here but are handed to the fusion engine as an
explicit FusionPolicy, so `fuse()` never reads global state.

Usage:
    from gemfuse.config import get_config
    cfg = get_config()                        # loads from env / .env
    cfg = get_config("configs/strict.yaml")   # loads with YAML overrides
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gemfuse.schemas.fusion import FusionPolicy
from gemfuse.utils import short_hash


# ── Sub-configs ────────────────────────────────────────────────────
class OracleConfig(BaseModel):
    """Configuration for the vision-LLM calls (classification + extraction)."""
    classifier_model: str = Field(default="gpt-4o-mini", description="Model used to classify images")
    extractor_model: str = Field(default="gpt-4o", description="Model used to extract claims")
    temperature: float = Field(default=0.0, description="Sampling temperature for oracle calls")
    timeout_s: float = Field(
        default=30.0,
        gt=0.0,
        description="Hard bound on a single oracle call, in seconds"
    )
    classifier_max_tokens: int = Field(default=300, description="Max output tokens for classification")
    extractor_max_tokens: int = Field(default=800, description="Max output tokens for extraction")


class FusionConfig(BaseModel):
    """Thresholds for cross-image fusion and review routing."""
    dimension_tolerance_mm: float = Field(
        default=0.1,
        ge=0.0,
        description="Max spread (mm) between dimension readings before a conflict is raised"
    )
    weight_tolerance_ct: float = Field(
        default=0.05,
        ge=0.0,
        description="Max spread (ct) between weight readings before a conflict is raised"
    )
    min_confidence_threshold: float = Field(
        default=0.6,
        ge=0.0, le=1.0,
        description="Weight/height confidence below this sends the record to review"
    )
    value_precision: int = Field(
        default=6,
        ge=0,
        description="Decimal places kept on resolved numeric values"
    )

    def to_policy(self) -> FusionPolicy:
        """Freeze these thresholds into the policy object fusion consumes."""
        return FusionPolicy(
            dimension_tolerance_mm=self.dimension_tolerance_mm,
            weight_tolerance_ct=self.weight_tolerance_ct,
            min_confidence_threshold=self.min_confidence_threshold,
            value_precision=self.value_precision,
        )


class PipelineConfig(BaseModel):
    """Configuration for the per-gemstone orchestrator."""
    max_workers: int = Field(default=4, ge=1, description="Parallel images per gemstone")


# ── Main Config ────────────────────────────────────────────────────
class GemFuseConfig(BaseSettings):
    """
    Root configuration for GemFuse.

    Loads from environment variables (GEMFUSE_ prefix) and .env file.
    Can be extended with YAML overrides via `get_config(yaml_path)`.

    Example:
        export GEMFUSE_OPENAI_API_KEY=sk-...
        export GEMFUSE_FUSION__DIMENSION_TOLERANCE_MM=0.05
    """
    model_config = SettingsConfigDict(
        env_prefix="GEMFUSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ── Top-level settings ─────────────────────────────────────────
    output_dir: Path = Field(default=Path("./outputs"), description="Output directory")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: 'json' or 'text'")

    # ── OpenAI API ─────────────────────────────────────────────────
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")

    # ── Google Gemini API ──────────────────────────────────────────
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API key")
    gemini_model: str = Field(default="gemini-2.0-flash", description="Gemini model for both stages")

    # ── Sub-configs ────────────────────────────────────────────────
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    def config_hash(self) -> str:
        """
        Produce a deterministic SHA-256 hash of the configuration.

        API keys are excluded so the hash can be logged and stored.
        """
        return short_hash(self.model_dump(mode="json", exclude={"openai_api_key", "gemini_api_key"}))


# ── Config Loading ─────────────────────────────────────────────────
def get_config(yaml_path: Optional[str] = None) -> GemFuseConfig:
    """
    Load GemFuse configuration.

    Priority (highest to lowest):
        1. Explicit YAML values (if provided)
        2. Environment variables (GEMFUSE_ prefix)
        3. .env file
        4. Default values

    Args:
        yaml_path: Optional path to a YAML config file for overrides.

    Returns:
        Fully resolved GemFuseConfig instance.
    """
    if yaml_path:
        import yaml
        with open(yaml_path, encoding="utf-8") as f:
            overrides = yaml.safe_load(f) or {}
        return GemFuseConfig(**overrides)
    return GemFuseConfig()
