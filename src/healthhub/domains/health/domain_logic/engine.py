"""Heuristic analysis engine: runs every analyzer pass over one context.

Passes are independent and order-free; their outputs are concatenated, not
merged or deduplicated. A pass that raises is logged and skipped so the
others still contribute.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers import DEFAULT_PASSES, AnalyzerPass

logger = logging.getLogger(__name__)


@dataclass
class AnalysisReport:
    insights: list[AnalyzedInsight] = field(default_factory=list)
    failed_passes: list[str] = field(default_factory=list)


class AnalysisEngine:
    """Pure function of its input: no I/O, no clock reads.

    Usage::

        engine = AnalysisEngine()
        insights = engine.analyze(ctx)
    """

    def __init__(self, passes: tuple[tuple[str, AnalyzerPass], ...] = DEFAULT_PASSES) -> None:
        self._passes = passes

    @property
    def pass_names(self) -> list[str]:
        return [name for name, _ in self._passes]

    def run(self, ctx: AnalysisContext) -> AnalysisReport:
        report = AnalysisReport()
        for name, analyzer in self._passes:
            try:
                produced = analyzer(ctx)
            except Exception:
                logger.exception("Analyzer pass %s failed for %s", name, ctx.user_id)
                report.failed_passes.append(name)
                continue
            logger.debug("Analyzer pass %s: %d insights", name, len(produced))
            report.insights.extend(produced)
        return report

    def analyze(self, ctx: AnalysisContext) -> list[AnalyzedInsight]:
        return self.run(ctx).insights
