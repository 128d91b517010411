"""Aggregator/Reporter: SummaryResults in completion order -> one ordered Report."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from scanners.normalizer import Endpoint
from scanners.polyglot import ExtractionIssue

from .base_agent import ErrorKind, SummaryResult, SummaryStatus

logger = logging.getLogger("restapisummarizer.summarizer.aggregator")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2


@dataclass
class ReportItem:
    endpoint: Endpoint
    result: SummaryResult

    def to_dict(self) -> Dict[str, Any]:
        data = self.endpoint.to_dict()
        data.update({
            "status": self.result.status.value,
            "summary": self.result.summary_text,
            "error": self.result.error.value if self.result.error else None,
            "error_message": self.result.error_message,
            "from_cache": self.result.from_cache,
            "warnings": self.result.warnings,
        })
        return data


@dataclass
class Report:
    """Every discovered endpoint with an explicit status, in discovery order."""
    items: List[ReportItem] = field(default_factory=list)
    issues: List[ExtractionIssue] = field(default_factory=list)

    @property
    def results(self) -> List[SummaryResult]:
        return [item.result for item in self.items]

    @property
    def counters(self) -> Dict[str, int]:
        statuses = [item.result.status for item in self.items]
        return {
            "total": len(self.items),
            "succeeded": statuses.count(SummaryStatus.OK),
            "failed": statuses.count(SummaryStatus.FAILED),
            "skipped": statuses.count(SummaryStatus.SKIPPED),
            "cached": sum(1 for item in self.items if item.result.from_cache),
        }

    def exit_code(self, max_failure_ratio: Optional[float] = None) -> int:
        """
        0: success (isolated per-item failures are tolerated by default)
        1: nothing discovered, or failed/total reached ``max_failure_ratio``
        2: partial, some endpoints were skipped by the run deadline
        """
        counters = self.counters
        if counters["total"] == 0:
            return EXIT_FAILURE
        if max_failure_ratio is not None and counters["failed"] / counters["total"] >= max_failure_ratio:
            return EXIT_FAILURE
        if counters["skipped"]:
            return EXIT_PARTIAL
        return EXIT_OK

    def to_dict(self) -> Dict[str, Any]:
        """Stable serialized structure; contains no timestamps."""
        return {
            "endpoints": [item.to_dict() for item in self.items],
            "counters": self.counters,
            "issues": [issue.to_dict() for issue in self.issues],
        }


class ReportAggregator:
    """Reorders results into discovery order and fills any gaps."""

    def build(
        self,
        endpoints: List[Endpoint],
        results: List[SummaryResult],
        issues: Optional[List[ExtractionIssue]] = None,
    ) -> Report:
        by_id: Dict[str, SummaryResult] = {}
        for result in results:
            if result.endpoint_id in by_id:
                logger.warning(f"Duplicate result for endpoint {result.endpoint_id} ignored")
                continue
            by_id[result.endpoint_id] = result

        items = []
        for endpoint in endpoints:
            result = by_id.get(endpoint.id)
            if result is None:
                logger.warning(f"No result for endpoint {endpoint.id}; marking it skipped")
                result = SummaryResult(
                    endpoint_id=endpoint.id,
                    status=SummaryStatus.SKIPPED,
                    error=ErrorKind.RUN_TIMEOUT,
                    error_message="no result produced",
                )
            items.append(ReportItem(endpoint, result))

        report = Report(items=items, issues=list(issues or []))
        logger.info(f"Report: {report.counters}")
        return report
