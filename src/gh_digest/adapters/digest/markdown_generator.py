"""Markdown digest renderer."""

from datetime import date

from gh_digest.core import AnnotatedItem, ItemStatus, ReportRenderer, Tier
from gh_digest.use_cases import PipelineResult

TIER_HEADINGS = {
    Tier.CRITICAL: "## 🔴 Critical",
    Tier.HIGH: "## 🟠 High",
    Tier.MEDIUM: "## 🟡 Medium",
    Tier.LOW: "## ⚪ Low",
}

RAW_EXCERPT_CHARS = 400


class MarkdownReportRenderer(ReportRenderer):
    """Render a pipeline result as a markdown digest."""

    def render(self, result: PipelineResult, digest_date: date) -> str:
        """Render markdown digest."""
        items = result.items
        lines = [
            f"# GitHub Activity Digest for {digest_date.isoformat()}",
            "",
            f"Items: {len(items)}",
            "",
        ]

        if result.summary.cancelled:
            lines.extend(["> ⚠️ Run was interrupted; this digest is partial.", ""])

        if not items:
            lines.extend(["No activity found.", ""])

        for tier, tier_items in result.tiers:
            if not tier_items:
                continue
            lines.extend([TIER_HEADINGS[tier], ""])
            for item in tier_items:
                lines.extend(self._format_item(item))

        if result.overflow:
            lines.extend(["## Not shown", ""])
            for record in result.overflow:
                lines.append(f"- {record.count} more {record.section} over the report limit")
            lines.append("")

        lines.extend(self._format_summary(result))
        return "\n".join(lines)

    def _format_item(self, annotated: AnnotatedItem) -> list[str]:
        """Format single digest item."""
        item = annotated.scored.item
        lines = [
            f"### [{item.title or item.id}]({item.url})",
            "",
            f"*{item.repo} · {item.kind.value} · @{item.author} · score {annotated.scored.score:.1f}*",
            "",
        ]

        if annotated.summary:
            lines.append(annotated.summary)
        elif annotated.status == ItemStatus.SKIPPED:
            lines.append("_Not summarized (run interrupted)._")
        else:
            excerpt = item.body[:RAW_EXCERPT_CHARS]
            lines.append("_Summary unavailable, raw content:_")
            if excerpt:
                lines.extend(["", f"> {excerpt}".replace("\n", "\n> ")])
        lines.append("")

        if item.matched_rules:
            lines.extend([f"Watch rules: {', '.join(sorted(item.matched_rules))}", ""])

        lines.append("---")
        lines.append("")
        return lines

    @staticmethod
    def _format_summary(result: PipelineResult) -> list[str]:
        summary = result.summary
        lines = [
            "## Run summary",
            "",
            f"- Items fetched: {summary.items_fetched}",
            f"- Summaries from cache: {summary.cache_hits}",
            f"- Summarizer calls: {summary.summarizer_calls}",
            f"- Tokens: {summary.input_tokens} in / {summary.output_tokens} out",
        ]
        if summary.repos_added:
            lines.append(f"- Repositories added: {', '.join(summary.repos_added)}")
        if summary.repos_removed:
            lines.append(f"- Repositories removed: {', '.join(summary.repos_removed)}")
        if summary.degraded:
            lines.append(f"- Degraded items: {len(summary.degraded)}")
        if summary.skipped:
            lines.append(f"- Skipped items: {len(summary.skipped)}")
        if summary.discovery_failure:
            lines.append(f"- Discovery failed: {summary.discovery_failure}")
        for repo, error in sorted(summary.source_failures.items()):
            lines.append(f"- Fetch failed for {repo}: {error}")
        if summary.skipped_repos:
            lines.append(f"- Fetch skipped (run interrupted): {', '.join(sorted(summary.skipped_repos))}")
        lines.append("")
        return lines
