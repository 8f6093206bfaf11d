import os
import re
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_COMPLETED
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlparse

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from blogsmith.models.schemas import SourceReference, SourceStatus
from blogsmith.utils.error_handler import error_handler
from blogsmith.utils.retry import CancellationToken


USER_AGENT = 'Blogsmith/1.0 SourceValidator (+https://example.com/bot)'

# Statuses where HEAD is often refused even though the page exists
AMBIGUOUS_HEAD_STATUSES = {403, 405, 429, 501}


class SourceValidator:
    def __init__(
        self,
        timeout: Optional[float] = None,
        timeout_retries: Optional[int] = None,
        max_workers: Optional[int] = None,
        session: Optional[requests.Session] = None
    ):
        self.timeout = timeout or float(os.getenv("HTTP_TIMEOUT_SECONDS", "5"))
        self.timeout_retries = timeout_retries if timeout_retries is not None else int(os.getenv("SOURCE_CHECK_RETRIES", "1"))
        self.max_workers = max_workers or int(os.getenv("SOURCE_CHECK_WORKERS", "8"))
        self.session = session or requests.Session()

        # Known paywalled/protected domains where 403/429 is acceptable
        self.paywalled_domains = {
            "ieee.org",
            "acm.org",
            "springer.com",
            "sciencedirect.com",
            "jstor.org",
            "wiley.com",
            "nature.com",
            "science.org",
            "arxiv.org",  # sometimes blocks automated requests
            "medium.com",  # metered paywall, often 403 for bots
            "oreilly.com"  # publisher, may block bots
        }

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None) -> "SourceValidator":
        return cls(
            timeout=settings.source_check_timeout,
            timeout_retries=settings.source_check_retries,
            max_workers=settings.source_check_workers,
            session=session
        )

    def extract_urls(self, markdown_content: str) -> List[str]:
        """Extract all URLs from markdown content, in order of first appearance"""
        md_links = re.findall(r'\[[^\]]*\]\((https?://[^\)\s]+)\)', markdown_content)
        plain_urls = re.findall(r'https?://[^\s\)\]]+', markdown_content)

        seen = set()
        urls = []
        for url in md_links + plain_urls:
            url = url.rstrip('.,;:!?')
            if url not in seen:
                seen.add(url)
                urls.append(url)
        return urls

    def validate(
        self,
        sources: List[SourceReference],
        timeout_per_check: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
        recheck: bool = False
    ) -> List[SourceReference]:
        """
        Check every source that still needs a verdict and return updated copies.
        Already-classified sources are returned untouched unless recheck is set,
        so a dead source never flips back to live on its own.
        Nothing is returned until every check in this pass has finished.
        """
        token = cancel_token or CancellationToken()
        timeout = timeout_per_check or self.timeout
        token.raise_if_cancelled("source validation")

        results: List[Optional[SourceReference]] = [None] * len(sources)
        pending = {}
        to_check = []
        for index, source in enumerate(sources):
            if source.status == SourceStatus.UNCHECKED or recheck:
                to_check.append(index)
            else:
                results[index] = source

        if to_check:
            executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(to_check)),
                                          thread_name_prefix="source-check")
            try:
                for index in to_check:
                    future = executor.submit(self.check_source, sources[index], timeout)
                    pending[future] = index

                while pending:
                    done, _ = wait(list(pending), timeout=0.1, return_when=FIRST_COMPLETED)
                    for future in done:
                        results[pending.pop(future)] = future.result()
                    token.raise_if_cancelled("source validation")
            finally:
                executor.shutdown(wait=not token.cancelled, cancel_futures=True)

        checked = [r for r in results if r is not None]
        live = sum(1 for r in checked if r.status == SourceStatus.LIVE)
        error_handler.logger.info(f"Validated {len(to_check)} source(s): {live}/{len(checked)} live")
        return checked

    def check_source(self, source: SourceReference, timeout: Optional[float] = None) -> SourceReference:
        """Classify a single source as live, dead or error"""
        timeout = timeout or self.timeout
        checked_at = datetime.now(timezone.utc)

        if not self._is_well_formed(source.url):
            return source.model_copy(update={
                "status": SourceStatus.DEAD,
                "checked_at": checked_at,
                "http_status": None,
                "error": "Missing or malformed URL"
            })

        try:
            status_code = self._check_with_retry(source.url, timeout)
        except requests.exceptions.Timeout as e:
            return source.model_copy(update={
                "status": SourceStatus.ERROR,
                "checked_at": checked_at,
                "http_status": None,
                "error": f"Timed out after {self.timeout_retries + 1} attempt(s): {e}"
            })
        except requests.exceptions.RequestException as e:
            return source.model_copy(update={
                "status": SourceStatus.DEAD,
                "checked_at": checked_at,
                "http_status": None,
                "error": str(e)
            })

        return source.model_copy(update={
            "status": self.classify(source.url, status_code),
            "checked_at": checked_at,
            "http_status": status_code,
            "error": None
        })

    def classify(self, url: str, status_code: int) -> SourceStatus:
        """Success and redirect codes are live, everything else is dead"""
        if 200 <= status_code < 400:
            return SourceStatus.LIVE
        if status_code in (403, 429) and self._is_paywalled_domain(url):
            # 403/429 is acceptable for known paywalled/protected sources
            return SourceStatus.LIVE
        return SourceStatus.DEAD

    def _check_with_retry(self, url: str, timeout: float) -> int:
        check = retry(
            retry=retry_if_exception_type(requests.exceptions.Timeout),
            stop=stop_after_attempt(self.timeout_retries + 1),
            wait=wait_exponential(multiplier=0.5, max=2),
            reraise=True
        )(self._check)
        return check(url, timeout)

    def _check(self, url: str, timeout: float) -> int:
        """HEAD first, then a one-byte GET when HEAD is refused or ambiguous"""
        headers = {'User-Agent': USER_AGENT}
        try:
            response = self.session.head(url, timeout=timeout, allow_redirects=True, headers=headers)
            if response.status_code not in AMBIGUOUS_HEAD_STATUSES:
                return response.status_code
        except requests.exceptions.Timeout:
            raise
        except requests.exceptions.RequestException:
            # Some servers drop HEAD entirely; let the GET decide
            pass

        response = self.session.get(
            url,
            timeout=timeout,
            allow_redirects=True,
            stream=True,
            headers={**headers, 'Range': 'bytes=0-0'}
        )
        try:
            return response.status_code
        finally:
            response.close()

    def _is_well_formed(self, url: str) -> bool:
        if not url:
            return False
        parsed = urlparse(url)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    def _is_paywalled_domain(self, url: str) -> bool:
        """Check if URL is from a known paywalled domain"""
        host = (urlparse(url).hostname or "").lower()
        return any(host == domain or host.endswith("." + domain) for domain in self.paywalled_domains)


def valid_percentage(sources: List[SourceReference]) -> float:
    """Fraction of sources that are live; error counts as not live"""
    if not sources:
        return 0.0
    live = sum(1 for s in sources if s.status == SourceStatus.LIVE)
    return live / len(sources)
