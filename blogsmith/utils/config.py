"""
Quality thresholds and runtime settings
Thresholds come from YAML and are frozen for the whole run; runtime settings
come from the environment (.secrets / .env are loaded by the CLI)
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from blogsmith.models.schemas import Dimension
from blogsmith.utils.error_handler import FatalConfigurationError


DEFAULT_THRESHOLDS_PATH = Path("config") / "quality_thresholds.yaml"


class ScoreWeights(BaseModel):
    """Relative weight of each dimension in the overall score"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    structure: float = Field(default=0.20, ge=0)
    readability: float = Field(default=0.20, ge=0)
    coherence: float = Field(default=0.20, ge=0)
    technical_depth: float = Field(default=0.15, ge=0)
    source_quality: float = Field(default=0.25, ge=0)

    @model_validator(mode="after")
    def _check_total(self):
        if self.total <= 0:
            raise ValueError("at least one dimension weight must be positive")
        return self

    @property
    def total(self) -> float:
        return self.structure + self.readability + self.coherence + self.technical_depth + self.source_quality

    def weight_for(self, dimension: Dimension) -> float:
        return getattr(self, dimension.value)


class ThresholdConfig(BaseModel):
    """Every numeric bound the quality gate checks against"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Structure
    min_sections: int = Field(default=3, ge=0)
    max_sections: int = Field(default=8, ge=1)
    min_section_length: int = Field(default=150, ge=0, description="characters")
    max_section_length: int = Field(default=2000, ge=1, description="characters")
    min_intro_length: int = Field(default=100, ge=0)
    min_conclusion_length: int = Field(default=100, ge=0)

    # Sources and citations
    min_sources: int = Field(default=8, ge=0)
    min_valid_source_percentage: float = Field(default=0.85, ge=0, le=1)
    min_inline_citations: int = Field(default=5, ge=0)
    citation_density: float = Field(default=0.002, gt=0, description="target citations per character")
    citation_density_tolerance: float = Field(default=0.5, ge=0, le=1)
    max_citation_density_multiplier: float = Field(default=5.0, ge=1)
    max_uncited_section_ratio: float = Field(default=0.3, ge=0, le=1)

    # Readability
    min_avg_sentence_length: float = Field(default=10, ge=0, description="words")
    max_avg_sentence_length: float = Field(default=25, gt=0, description="words")
    long_sentence_words: int = Field(default=30, gt=0)
    max_consecutive_long_sentences: int = Field(default=3, ge=0)

    # Coherence
    min_transition_words: int = Field(default=5, ge=0)
    min_keyword_density: float = Field(default=0.01, ge=0, le=1)
    max_keyword_density: float = Field(default=0.05, ge=0, le=1)

    # Gate floors
    min_structure_score: float = Field(default=60, ge=0, le=100)
    min_readability_score: float = Field(default=60, ge=0, le=100)
    min_coherence_score: float = Field(default=60, ge=0, le=100)
    min_technical_depth_score: float = Field(default=60, ge=0, le=100)
    min_source_quality_score: float = Field(default=80, ge=0, le=100)
    min_overall_score: float = Field(default=70, ge=0, le=100)

    # Scoring
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    structure_issue_penalty: float = Field(default=15, ge=0)
    readability_issue_penalty: float = Field(default=20, ge=0)
    first_person_penalty: float = Field(default=5, ge=0)
    coherence_issue_penalty: float = Field(default=20, ge=0)
    dangling_citation_penalty: float = Field(default=10, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self):
        pairs = [
            ("min_sections", "max_sections"),
            ("min_section_length", "max_section_length"),
            ("min_avg_sentence_length", "max_avg_sentence_length"),
            ("min_keyword_density", "max_keyword_density"),
        ]
        for low, high in pairs:
            if getattr(self, low) > getattr(self, high):
                raise ValueError(f"{low} ({getattr(self, low)}) exceeds {high} ({getattr(self, high)})")
        return self

    def floor_for(self, dimension: Dimension) -> float:
        return getattr(self, f"min_{dimension.value}_score")


class PipelineSettings(BaseModel):
    """Runtime knobs for retries, timeouts and concurrency"""
    model_config = ConfigDict(frozen=True)

    max_revisions: int = Field(default=2, ge=0)
    max_case_attempts: int = Field(default=3, ge=1)

    source_check_timeout: float = Field(default=5.0, gt=0)
    source_check_retries: int = Field(default=1, ge=0)
    source_check_workers: int = Field(default=8, ge=1)

    provider_max_attempts: int = Field(default=3, ge=1)
    provider_timeout: float = Field(default=120.0, gt=0)
    backoff_delay: float = Field(default=10.0, ge=0)
    backoff_multiplier: float = Field(default=1.5, ge=1)
    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_reset_seconds: float = Field(default=300.0, ge=0)

    max_concurrent_records: int = Field(default=2, ge=1)
    cache_ttl_seconds: float = Field(default=86400.0, gt=0)
    cache_max_size: int = Field(default=1000, ge=1)

    output_dir: str = "blog-output"
    run_logs_dir: str = "run_logs"

    @classmethod
    def from_env(cls, **overrides) -> "PipelineSettings":
        """Build settings from BLOGSMITH_* environment variables"""
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"BLOGSMITH_{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            raise FatalConfigurationError(f"Invalid pipeline settings: {e}") from e


def load_threshold_config(path: Optional[str] = None) -> ThresholdConfig:
    """
    Load thresholds once for the run.
    An explicit path must exist; without one the default YAML is used when
    present, otherwise the built-in defaults.
    """
    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise FatalConfigurationError(f"Threshold config not found: {config_path}")
    else:
        config_path = DEFAULT_THRESHOLDS_PATH
        if not config_path.exists():
            return ThresholdConfig()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise FatalConfigurationError(f"Threshold config is not valid YAML ({config_path}): {e}") from e

    if not isinstance(data, dict):
        raise FatalConfigurationError(f"Threshold config must be a mapping: {config_path}")

    # Allow the thresholds to be nested under a top-level key
    data = data.get("quality_thresholds", data)

    try:
        return ThresholdConfig(**data)
    except ValidationError as e:
        raise FatalConfigurationError(f"Invalid threshold config ({config_path}): {e}") from e
