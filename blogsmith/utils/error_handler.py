"""
Error Taxonomy and Error Tracking
Classified pipeline failures plus centralized logging of handled errors
"""

import logging
import threading
import traceback
from typing import Optional, Dict, Any
from dataclasses import dataclass
from enum import Enum


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PipelineError(Exception):
    """Base class for every classified pipeline failure"""


class TransientNetworkError(PipelineError):
    """A link check or provider call failed on a timeout or connection problem"""


class AttemptTimeoutError(TransientNetworkError):
    """A single attempt ran past its per-attempt timeout"""


class MalformedResponseError(PipelineError):
    """A provider answered with something that could not be parsed at all"""


class TransientProviderError(PipelineError):
    """Retries against an external provider were exhausted"""

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException] = None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"{operation} failed after {attempts} attempt(s){detail}")


class InvalidContentError(PipelineError):
    """Generated draft does not have the expected section structure"""


class QualityGateFailure(PipelineError):
    """Quality gate still failing after every allowed revision was spent"""

    def __init__(self, report, revision_count: int):
        self.report = report
        self.revision_count = revision_count
        failed = ", ".join(d.value for d in report.failed_dimensions()) or "overall score"
        super().__init__(
            f"Quality gate failed after {revision_count} revision(s): "
            f"overall {report.overall_score:.1f}/{report.min_overall_score:.0f}, failing: {failed}"
        )


class FatalConfigurationError(PipelineError):
    """Missing or invalid configuration, or a required collaborator is unavailable"""


class PipelineCancelled(PipelineError):
    """The run was cancelled from above"""


class StatusTransitionError(PipelineError):
    """A record was asked to move between statuses the lifecycle does not allow"""


class PublishError(PipelineError):
    """The publish sink rejected the record"""


@dataclass
class ErrorContext:
    """Context information for error handling"""
    operation: str
    component: str
    attempt: int
    max_attempts: int
    user_message: str
    technical_details: str


class GracefulErrorHandler:
    """Centralized error logging and per-component error counts"""

    def __init__(self, logger_name: str = "Blogsmith"):
        self.logger = self._setup_logger(logger_name)
        self.error_counts = {}
        self._lock = threading.Lock()

    def _setup_logger(self, logger_name: str) -> logging.Logger:
        """Setup console logging for error tracking"""
        logger = logging.getLogger(logger_name)
        logger.setLevel(logging.INFO)

        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.WARNING)
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
            logger.addHandler(console_handler)

        return logger

    def add_file_log(self, log_file: str):
        """Also write INFO and above to a log file"""
        for handler in self.logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename.endswith(log_file):
                return
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        self.logger.addHandler(file_handler)

    def handle_error(
        self,
        error: Exception,
        context: ErrorContext,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM
    ) -> Dict[str, Any]:
        """
        Count and log a handled error
        Returns: {'message': str, 'technical_details': str, 'severity': str}
        """
        error_key = f"{context.component}.{context.operation}"
        with self._lock:
            self.error_counts[error_key] = self.error_counts.get(error_key, 0) + 1

        self._log_error(error, context, severity)

        return {
            'message': context.user_message,
            'technical_details': str(error),
            'severity': severity.value
        }

    def _log_error(self, error: Exception, context: ErrorContext, severity: ErrorSeverity):
        """Log error with appropriate level based on severity"""

        error_msg = (
            f"[{context.component}.{context.operation}] "
            f"attempt {context.attempt}/{context.max_attempts}: {context.technical_details}"
        )

        if severity == ErrorSeverity.CRITICAL:
            self.logger.critical(error_msg)
        elif severity == ErrorSeverity.HIGH:
            self.logger.error(error_msg)
        elif severity == ErrorSeverity.MEDIUM:
            self.logger.warning(error_msg)
        else:
            self.logger.info(error_msg)

        self.logger.debug("Full traceback: %s", "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ))

    def get_error_stats(self) -> Dict[str, int]:
        """Get error statistics"""
        with self._lock:
            return self.error_counts.copy()

    def reset(self):
        with self._lock:
            self.error_counts = {}


# Global error handler instance
error_handler = GracefulErrorHandler()


def record_error(
    error: Exception,
    component: str,
    operation: str,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    user_message: str = "An error occurred",
    attempt: int = 1,
    max_attempts: int = 1
) -> Dict[str, Any]:
    """Convenience wrapper around the global handler"""
    context = ErrorContext(
        operation=operation,
        component=component,
        attempt=attempt,
        max_attempts=max_attempts,
        user_message=user_message,
        technical_details=str(error)
    )
    return error_handler.handle_error(error, context, severity)


def create_error_summary() -> Dict[str, Any]:
    """Create a summary of errors encountered during execution"""
    error_stats = error_handler.get_error_stats()

    return {
        "total_errors": sum(error_stats.values()),
        "error_breakdown": error_stats,
        "most_common_errors": sorted(error_stats.items(), key=lambda x: x[1], reverse=True)[:5]
    }
