import os
import sys
import argparse
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional

from dotenv import load_dotenv

from blogsmith.agents.providers import LLMAssetGenerator, LLMCaseStudyFinder, LLMDraftGenerator
from blogsmith.models.schemas import GenerationRecord, RecordStatus
from blogsmith.tools.links import SourceValidator
from blogsmith.utils.cache import ContentCache
from blogsmith.utils.config import PipelineSettings, ThresholdConfig, load_threshold_config
from blogsmith.utils.error_handler import (
    FatalConfigurationError,
    PipelineCancelled,
    create_error_summary,
    error_handler,
)
from blogsmith.utils.file_io import FilePublishSink
from blogsmith.utils.input_validator import validate_startup
from blogsmith.utils.retry import RetryController
from blogsmith.utils.tracer import initialize_tracer
from blogsmith.workflow.batch import BatchRunner
from blogsmith.workflow.nodes import PipelineNodes
from blogsmith.workflow.orchestrator import PipelineOrchestrator


class BlogGenerator:
    """Main entry point wiring configuration, providers and the pipeline together"""

    def __init__(self, thresholds: ThresholdConfig, settings: PipelineSettings, **collaborators):
        self.thresholds = thresholds
        self.settings = settings
        self.collaborators = collaborators
        self.orchestrator: Optional[PipelineOrchestrator] = None

    def initialize_after_secrets_loaded(self, verbose: bool = True):
        """Validate everything, then build the providers that need API keys"""
        require_llm = not all(
            self.collaborators.get(name) for name in ("case_study_finder", "draft_generator")
        )
        validate_startup(self.thresholds, self.settings, self.collaborators,
                         require_llm=require_llm, verbose=verbose)

        c = self.collaborators
        nodes = PipelineNodes(
            case_study_finder=c.get("case_study_finder") or LLMCaseStudyFinder(),
            draft_generator=c.get("draft_generator") or LLMDraftGenerator(self.thresholds),
            source_validator=c.get("source_validator") or SourceValidator.from_settings(self.settings),
            publish_sink=c.get("publish_sink") or FilePublishSink.from_settings(self.settings),
            diagram_generator=c.get("diagram_generator") or LLMAssetGenerator("diagram"),
            image_generator=c.get("image_generator") or LLMAssetGenerator("illustration"),
            thresholds=self.thresholds,
            settings=self.settings,
            retry_controller=RetryController.from_settings(self.settings),
            cache=ContentCache.from_settings(self.settings)
        )
        self.orchestrator = PipelineOrchestrator(nodes)

    def generate(
        self,
        topics: List[str],
        keywords: Optional[List[str]] = None,
        dry_run: bool = False,
        verbose: bool = True
    ) -> Dict[str, Any]:
        run_name = datetime.now().strftime("run_%Y%m%d_%H%M%S")
        tracer = initialize_tracer(run_name, verbose, self.settings.run_logs_dir)
        error_handler.add_file_log(str(Path(self.settings.run_logs_dir) / f"{run_name}.log"))

        print(f"📝 Generating {len(topics)} post(s) (max revisions: {self.settings.max_revisions})")

        if dry_run:
            print("🔍 DRY RUN MODE - No content will be generated")
            return {"topics": topics, "dry_run": True, "success": True}

        runner = BatchRunner(self.orchestrator, self.settings.max_concurrent_records)
        keyword_map = {topic: keywords for topic in topics} if keywords else None

        try:
            records = runner.run(topics, thresholds=self.thresholds, keywords=keyword_map)
        except KeyboardInterrupt:
            runner.cancel()
            raise

        published = [r for r in records if r.status == RecordStatus.PUBLISHED]
        tracer.run_complete(len(published), len(records))

        sink = FilePublishSink.from_settings(self.settings)
        for record in records:
            sink.log_run_state(run_name, record.summary())

        result = {
            "run_name": run_name,
            "records": [r.summary() for r in records],
            "published": len(published),
            "total": len(records),
            "success": len(published) == len(records),
            "error_summary": create_error_summary(),
            "trace": tracer.get_summary()
        }
        self._print_results(records)
        return result

    def _print_results(self, records: List[GenerationRecord]):
        print("\n" + "="*60)
        print("📋 RESULTS")
        print("="*60)
        for record in records:
            report = record.quality_report
            score = f"{report.overall_score:.1f}/100" if report else "n/a"
            if record.status == RecordStatus.PUBLISHED:
                print(f"✅ {record.topic}: {score} after {record.revision_count} revision(s) -> {record.publish_location}")
            else:
                print(f"❌ {record.topic}: {score} - {record.error}")
                if report:
                    for issue in report.issues[:5]:
                        print(f"     • {issue}")
        print("="*60 + "\n")


def load_secrets():
    """Load secrets from .secrets (or .env) file"""
    for candidate in (Path(".secrets"), Path(".env")):
        if candidate.exists():
            load_dotenv(candidate)
            print(f"🔑 Loaded secrets from {candidate}")
            return
    print("⚠️  No .secrets file found - using environment variables only")


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Generate technical blog posts that must pass a quality gate before publishing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m blogsmith.main "circuit breakers"
  python -m blogsmith.main "rate limiting" "event sourcing" --concurrency 2
  python -m blogsmith.main "kafka consumer groups" --keywords "consumer group"

Environment Variables:
  OPENAI_API_KEY            OpenAI access
  AZURE_ENDPOINT, AZURE_SUBSCRIPTION_KEY, AZURE_API_VERSION
                            Azure OpenAI access (takes precedence)
  BLOGSMITH_*               Any PipelineSettings field, e.g. BLOGSMITH_MAX_REVISIONS=3

Configuration Files:
  .secrets                        API keys and settings
  config/quality_thresholds.yaml  Quality gate thresholds
        """
    )

    parser.add_argument("topics", nargs="*", help="Topics to write about")
    parser.add_argument("--thresholds", help="Path to quality thresholds YAML file")
    parser.add_argument("--keywords", help="Comma-separated keywords; the first is the primary topic term")
    parser.add_argument("--max-revisions", type=int, help="Revision passes allowed per post")
    parser.add_argument("--concurrency", type=int, help="Posts generated at the same time")
    parser.add_argument("--dry-run", action="store_true", help="Validate configuration without generating")
    parser.add_argument("--quiet", action="store_true", help="Reduce output verbosity (disable progress tracing)")

    args = parser.parse_args()

    load_secrets()

    topics = args.topics or [t.strip() for t in os.getenv("BLOGSMITH_TOPICS", "").split(",") if t.strip()]
    if not topics:
        print("❌ ERROR: At least one topic must be provided")
        print('   Use: python -m blogsmith.main "<topic>"')
        sys.exit(1)

    keywords = [k.strip() for k in args.keywords.split(",") if k.strip()] if args.keywords else None

    try:
        thresholds = load_threshold_config(args.thresholds)
        settings = PipelineSettings.from_env(
            max_revisions=args.max_revisions,
            max_concurrent_records=args.concurrency
        )
        generator = BlogGenerator(thresholds, settings)
        generator.initialize_after_secrets_loaded(verbose=not args.quiet)
        result = generator.generate(topics, keywords=keywords, dry_run=args.dry_run, verbose=not args.quiet)
        sys.exit(0 if result.get("success") else 1)

    except FatalConfigurationError as e:
        print(f"❌ CONFIGURATION ERROR: {e}")
        sys.exit(2)
    except (KeyboardInterrupt, PipelineCancelled):
        print("\n🛑 Generation interrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    main()
