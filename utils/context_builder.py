"""Assembles the LLM context string from per-tool data bundles.

Each tool gets one markdown section listing whatever the adapters found:
repository metrics, documentation, and community figures.  Sources that
are missing are simply left out.  The README excerpt is truncated so that
a single long README cannot dominate the prompt.
"""

from __future__ import annotations

from datetime import datetime

from models.schemas import CommunityData, DocumentationData, GitHubData, ToolDataBundle

README_EXCERPT_CHARS = 1000
MIN_README_CHARS = 100
SECTION_SEPARATOR = "\n\n---\n\n"


def format_number(num: int) -> str:
    """Compact display form: ``1234`` -> ``"1.2K"``, ``2500000`` -> ``"2.5M"``."""
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1000:
        return f"{num / 1000:.1f}K"
    return str(num)


def _date(value: str | None) -> str:
    if not value:
        return "N/A"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return value


def _github_section(github: GitHubData) -> list[str]:
    repo = github.repository
    activity = github.activity
    commits = f"{activity.recent_commits}+" if activity.recent_commits_capped else str(activity.recent_commits)
    lines = [
        f"### GitHub Repository: {repo.full_name}",
        f"- **Stars:** {format_number(repo.stars)}",
        f"- **Forks:** {format_number(repo.forks)}",
        f"- **Open Issues:** {repo.open_issues}",
        f"- **Language:** {repo.language or 'N/A'}",
        f"- **License:** {repo.license or 'N/A'}",
        f"- **Last Updated:** {_date(repo.pushed_at)}",
        f"- **Recent Activity:** {commits} commits (last 30 days)",
        f"- **Contributors:** {activity.contributors}",
    ]
    if activity.releases:
        latest = activity.releases[0]
        lines.append(f"- **Latest Release:** {latest.tag_name} ({_date(latest.published_at)})")

    lines += ["", f"**Description:** {repo.description or 'No description available'}"]

    readme = github.readme
    if readme is not None and len(readme.content) > MIN_README_CHARS:
        excerpt = readme.content[:README_EXCERPT_CHARS]
        if len(readme.content) > README_EXCERPT_CHARS:
            excerpt += "..."
        lines += ["", "**README Excerpt:**", excerpt]
    return lines


def _docs_section(docs: DocumentationData) -> list[str]:
    lines = [
        "### Documentation",
        f"**Source:** {docs.url}",
        "",
        "**Introduction:**",
        docs.introduction,
    ]
    if docs.key_features:
        lines += ["", "**Key Features:**"]
        lines += [f"- {feature}" for feature in docs.key_features]
    return lines


def _community_section(community: CommunityData) -> list[str]:
    lines = ["### Community Metrics"]

    so = community.stackoverflow
    if so is not None:
        lines += [
            "**Stack Overflow:**",
            f"- Tag: {so.tag}",
            f"- Questions: {format_number(so.tag_stats.question_count)}",
        ]
        if so.top_questions:
            top = so.top_questions[0]
            lines.append(f'- Top Question: "{top.title}" ({top.score} score)')
        lines.append("")

    npm = community.npm
    if npm is not None:
        lines += [
            "**npm:**",
            f"- Package: {npm.package}",
            f"- Downloads (last month): {format_number(npm.downloads.last_month)}",
            f"- Download trend: {npm.downloads.trend}",
            f"- Latest Version: {npm.latest_version}",
            "",
        ]

    reddit = community.reddit
    if reddit is not None:
        lines += [
            f"**Reddit (r/{reddit.subreddit.name}):**",
            f"- Subscribers: {format_number(reddit.subreddit.subscribers)}",
            f"- Active Users: {reddit.subreddit.active_users}",
            "",
        ]
    return lines


def format_tool_context(bundle: ToolDataBundle) -> str:
    """Render one tool's bundle as a markdown section."""
    lines = [f"## {bundle.tool}", ""]

    if bundle.github is not None:
        lines += _github_section(bundle.github) + [""]
    if bundle.docs is not None:
        lines += _docs_section(bundle.docs) + [""]
    if bundle.community is not None:
        lines += _community_section(bundle.community)

    if len(lines) == 2:
        lines.append("No live data could be collected for this tool.")

    return "\n".join(lines).rstrip() + "\n"


def build_context(bundles: list[ToolDataBundle]) -> str:
    """Join per-tool sections in input order, ready for prompt injection."""
    return SECTION_SEPARATOR.join(format_tool_context(b) for b in bundles)
