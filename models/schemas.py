from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.tool_names import parse_tools

# ---------------------------------------------------------------------------
# API requests
# ---------------------------------------------------------------------------


class AnalyzeOptions(BaseModel):
    skip_cache: bool = False
    include_metrics: bool = True


class AnalyzeRequest(BaseModel):
    input: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="One or more tool names",
        examples=["React vs Vue", "Next.js"],
    )
    type: Literal["comparison", "deepdive"] | None = Field(
        default=None,
        description="Analysis kind; detected from the input when omitted",
    )
    options: AnalyzeOptions = Field(default_factory=AnalyzeOptions)

    @field_validator("input")
    @classmethod
    def validate_input(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Input must not be blank")
        if not parse_tools(v):
            raise ValueError("Input must name at least one tool")
        return v


class PrefetchRequest(BaseModel):
    tools: list[str] | None = None


class PrefetchResponse(BaseModel):
    message: str
    tools: list[str]


# ---------------------------------------------------------------------------
# Source data
# ---------------------------------------------------------------------------


class Release(BaseModel):
    tag_name: str
    published_at: str | None = None
    url: str | None = None


class RepositoryInfo(BaseModel):
    full_name: str
    description: str | None = None
    stars: int = 0
    forks: int = 0
    watchers: int = 0
    open_issues: int = 0
    language: str | None = None
    license: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    pushed_at: str | None = None
    url: str
    homepage: str | None = None
    topics: list[str] = Field(default_factory=list)


class Readme(BaseModel):
    content: str
    size: int


class Activity(BaseModel):
    # Counted from one page of at most 100 commits; a floor when capped.
    recent_commits: int = 0
    recent_commits_capped: bool = False
    contributors: int = 0
    releases: list[Release] = Field(default_factory=list)


class GitHubData(BaseModel):
    repository: RepositoryInfo
    readme: Readme | None = None
    activity: Activity = Field(default_factory=Activity)


class DocumentationData(BaseModel):
    introduction: str
    key_features: list[str] = Field(default_factory=list)
    url: str
    scraped_at: datetime


class TagStats(BaseModel):
    question_count: int = 0
    watch_count: int = 0


class Question(BaseModel):
    title: str
    score: int = 0
    view_count: int = 0
    link: str | None = None


class StackOverflowData(BaseModel):
    tag: str
    tag_stats: TagStats
    top_questions: list[Question] = Field(default_factory=list)


class SubredditStats(BaseModel):
    name: str
    subscribers: int = 0
    active_users: int = 0


class Discussion(BaseModel):
    title: str
    score: int = 0
    num_comments: int = 0
    url: str


class RedditData(BaseModel):
    subreddit: SubredditStats
    top_discussions: list[Discussion] = Field(default_factory=list)


class NpmDownloads(BaseModel):
    last_week: int = 0
    last_month: int = 0
    trend: Literal["increasing", "decreasing", "stable"] = "stable"


class NpmData(BaseModel):
    package: str
    downloads: NpmDownloads
    latest_version: str = "0.0.0"
    total_versions: int = 0
    dependency_count: int = 0


class CommunityData(BaseModel):
    stackoverflow: StackOverflowData | None = None
    reddit: RedditData | None = None
    npm: NpmData | None = None

    def is_empty(self) -> bool:
        return self.stackoverflow is None and self.reddit is None and self.npm is None


class ToolDataBundle(BaseModel):
    """Everything the adapters found for one tool; any source may be absent."""

    tool: str
    github: GitHubData | None = None
    docs: DocumentationData | None = None
    community: CommunityData | None = None


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


class ProsCons(BaseModel):
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)


class Metrics(BaseModel):
    stars: int
    forks: int
    downloads: str | None = None
    recent_activity: str | None = None


class LearningResource(BaseModel):
    type: str
    title: str
    url: str


class _Enrichable(BaseModel):
    """Fields filled in from live data after summarization."""

    model_config = ConfigDict(extra="ignore")

    github_url: str | None = None
    github_repo: str | None = None
    metrics: Metrics | None = None
    documentation_url: str | None = None
    last_updated: datetime | None = None


class ToolAnalysis(_Enrichable):
    name: str
    technical_summary: str
    use_cases: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    community_rating: float = Field(default=0.0, ge=0, le=5)
    top_pros_cons: ProsCons = Field(default_factory=ProsCons)
    architectural_insights: str | None = None
    gotchas: list[str] = Field(default_factory=list)


class ComparisonAnalysis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Literal["comparison"] = "comparison"
    tools: list[ToolAnalysis]
    comparison_summary: str
    recommendation: str


class DeepDiveAnalysis(_Enrichable):
    kind: Literal["deepdive"] = "deepdive"
    name: str
    technical_summary: str
    use_cases: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    community_rating: float = Field(default=0.0, ge=0, le=5)
    top_pros_cons: ProsCons = Field(default_factory=ProsCons)
    architectural_design: str = ""
    best_practices: list[str] = Field(default_factory=list)
    common_pitfalls: list[str] = Field(default_factory=list)
    gotchas: list[str] = Field(default_factory=list)
    learning_resources: list[LearningResource] = Field(default_factory=list)


Analysis = Annotated[Union[ComparisonAnalysis, DeepDiveAnalysis], Field(discriminator="kind")]


class SourceFlags(BaseModel):
    github: bool = False
    documentation: bool = False
    community: bool = False


class DataAge(BaseModel):
    github: str | None = None
    docs: str | None = None
    community: str | None = None


class AnalysisMetadata(BaseModel):
    sources: SourceFlags
    fetched_at: datetime
    tokens_used: int = 0
    data_age: DataAge = Field(default_factory=DataAge)


class AnalysisResponse(BaseModel):
    analysis: Analysis
    metadata: AnalysisMetadata
