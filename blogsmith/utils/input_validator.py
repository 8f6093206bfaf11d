"""
Startup Validation System
Validates thresholds, runtime settings, collaborators and API configuration
before any record is processed
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any

from blogsmith.utils.config import PipelineSettings, ThresholdConfig
from blogsmith.utils.error_handler import FatalConfigurationError


# Method each collaborator must expose
REQUIRED_METHODS = {
    "case_study_finder": "find",
    "draft_generator": "generate",
    "diagram_generator": "generate",
    "image_generator": "generate",
    "source_validator": "validate",
    "publish_sink": "publish",
}


@dataclass
class ValidationResult:
    """Result of startup validation"""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    info: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def add_info(self, message: str):
        self.info.append(message)


class InputValidator:
    """Checks everything a run depends on so that misconfiguration fails fast"""

    def __init__(self, thresholds: ThresholdConfig, settings: PipelineSettings):
        self.thresholds = thresholds
        self.settings = settings
        self.result = ValidationResult()

    def validate_all(
        self,
        collaborators: Optional[Dict[str, Any]] = None,
        require_llm: bool = False,
        verbose: bool = False
    ) -> ValidationResult:
        """Run all validation checks"""
        if verbose:
            print("🔍 Validating configuration...")

        self.result = ValidationResult()

        self._validate_thresholds()
        self._validate_settings()
        self._validate_collaborators(collaborators or {})
        if require_llm:
            self._validate_llm_configuration()

        if self.result.is_valid:
            self.result.add_info("✅ All validation checks passed")
        else:
            self.result.add_info(f"❌ Validation failed with {len(self.result.errors)} errors")

        return self.result

    def _validate_thresholds(self):
        t = self.thresholds
        weights = t.weights

        for dimension in ("structure", "readability", "coherence", "technical_depth", "source_quality"):
            if getattr(weights, dimension) == 0:
                self.result.add_warning(f"Weight for {dimension} is 0; it only counts through its floor")

        if t.min_technical_depth_score > 100 * 2 / 3:
            self.result.add_warning(
                "min_technical_depth_score requires all of example, diagram and glossary/quick reference"
            )
        if t.min_sources > 0 and t.min_inline_citations == 0:
            self.result.add_warning("min_inline_citations is 0 while sources are required")

        self.result.add_info(f"⚙️  Thresholds loaded (min overall {t.min_overall_score:g})")

    def _validate_settings(self):
        s = self.settings
        if s.provider_timeout < s.source_check_timeout:
            self.result.add_warning("provider_timeout is shorter than source_check_timeout")

        output_dir = Path(s.output_dir)
        if output_dir.exists() and not output_dir.is_dir():
            self.result.add_error(f"Output path exists but is not a directory: {output_dir}")

        logs_dir = Path(s.run_logs_dir)
        if logs_dir.exists() and not logs_dir.is_dir():
            self.result.add_error(f"Run log path exists but is not a directory: {logs_dir}")

        self.result.add_info(
            f"🔧 Settings: {s.max_revisions} revision(s), {s.max_concurrent_records} concurrent record(s)"
        )

    def _validate_collaborators(self, collaborators: Dict[str, Any]):
        for name, method in REQUIRED_METHODS.items():
            if name not in collaborators:
                continue
            collaborator = collaborators[name]
            if collaborator is None:
                self.result.add_error(f"Collaborator '{name}' is missing")
            elif not callable(getattr(collaborator, method, None)):
                self.result.add_error(f"Collaborator '{name}' has no callable {method}()")

    def _validate_llm_configuration(self):
        """Either Azure OpenAI or OpenAI must be configured"""
        azure_vars = ["AZURE_ENDPOINT", "AZURE_SUBSCRIPTION_KEY", "AZURE_API_VERSION"]
        azure_configured = all(os.getenv(var) for var in azure_vars)
        openai_configured = bool(os.getenv("OPENAI_API_KEY"))

        if not (azure_configured or openai_configured):
            self.result.add_error("No LLM configuration found")
            self.result.add_info("Configure either Azure OpenAI or OpenAI API keys in .secrets")
        elif azure_configured:
            self.result.add_info("🔑 Azure OpenAI configuration detected")
            if not os.getenv("AZURE_ENDPOINT", "").startswith("https://"):
                self.result.add_error("AZURE_ENDPOINT must start with https://")
        else:
            self.result.add_info("🔑 OpenAI configuration detected")
            if not os.getenv("OPENAI_API_KEY", "").startswith("sk-"):
                self.result.add_warning("OPENAI_API_KEY should start with 'sk-'")

    def print_results(self):
        """Print validation results in a user-friendly format"""
        print("\n" + "="*60)
        print("📋 STARTUP VALIDATION RESULTS")
        print("="*60)

        if self.result.info:
            print("\n📌 Information:")
            for info in self.result.info:
                print(f"   {info}")

        if self.result.warnings:
            print("\n⚠️  Warnings:")
            for warning in self.result.warnings:
                print(f"   ⚠️  {warning}")

        if self.result.errors:
            print("\n❌ Errors:")
            for error in self.result.errors:
                print(f"   ❌ {error}")

        print("="*60 + "\n")


def validate_startup(
    thresholds: ThresholdConfig,
    settings: PipelineSettings,
    collaborators: Optional[Dict[str, Any]] = None,
    require_llm: bool = False,
    verbose: bool = False
) -> ValidationResult:
    """Validate everything up front; raises FatalConfigurationError listing every error"""
    validator = InputValidator(thresholds, settings)
    result = validator.validate_all(collaborators, require_llm=require_llm, verbose=verbose)
    if verbose:
        validator.print_results()
    if not result.is_valid:
        raise FatalConfigurationError("Startup validation failed: " + "; ".join(result.errors))
    return result
