from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from blogsmith.models.schemas import GenerationRecord, RecordStatus
from blogsmith.utils.config import ThresholdConfig
from blogsmith.utils.error_handler import FatalConfigurationError, PipelineCancelled, error_handler
from blogsmith.utils.retry import CancellationToken
from blogsmith.workflow.orchestrator import PipelineOrchestrator


class BatchRunner:
    """Runs several topics concurrently; records share only the thresholds and provider clients"""

    def __init__(self, orchestrator: PipelineOrchestrator, max_concurrent_records: Optional[int] = None):
        self.orchestrator = orchestrator
        self.max_concurrent_records = max_concurrent_records or orchestrator.nodes.settings.max_concurrent_records
        self.cancel_token = CancellationToken()

    def cancel(self):
        """Cancel every record still in flight; finished records keep their outcome"""
        self.cancel_token.cancel()

    def run(
        self,
        topics: List[str],
        thresholds: Optional[ThresholdConfig] = None,
        keywords: Optional[Dict[str, List[str]]] = None
    ) -> List[GenerationRecord]:
        """
        Run every topic and return the records in input order.
        A FatalConfigurationError cancels the rest of the batch and is re-raised.
        """
        keywords = keywords or {}
        results: Dict[int, GenerationRecord] = {}
        fatal: Optional[FatalConfigurationError] = None

        with ThreadPoolExecutor(max_workers=self.max_concurrent_records, thread_name_prefix="record") as executor:
            futures = {
                executor.submit(
                    self.orchestrator.run,
                    topic,
                    thresholds=thresholds,
                    keywords=keywords.get(topic),
                    cancel_token=self.cancel_token
                ): index
                for index, topic in enumerate(topics)
            }

            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = future.result()
                except FatalConfigurationError as e:
                    error_handler.logger.error(f"Fatal configuration error, cancelling batch: {e}")
                    fatal = fatal or e
                    self.cancel()
                except PipelineCancelled as e:
                    error_handler.logger.warning(f"'{topics[index]}' cancelled: {e}")
                    results[index] = getattr(e, "record", None) or self._cancelled_record(topics[index], str(e))

        if fatal is not None:
            raise fatal

        return [results.get(i) or self._cancelled_record(topic, "Not started") for i, topic in enumerate(topics)]

    def _cancelled_record(self, topic: str, reason: str) -> GenerationRecord:
        record = GenerationRecord(topic=topic)
        record.status = RecordStatus.ABORTED
        record.error = f"Cancelled: {reason}"
        return record
