"""Repository velocity metrics with a read-through cache."""

import hashlib
import json
import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from orchestration.database import utcnow
from orchestration.exceptions import GitHubNotConfigured, ProjectNotFound
from orchestration.models.github_analysis import GitHubAnalysisCache
from orchestration.models.project import Project
from orchestration.schemas.context import GitHubAnalysis, HotSpot
from orchestration.services.github_client import GitHubClient
from orchestration.types import PeriodType

logger = logging.getLogger(__name__)

# Velocity score weights (capped at 100)
MERGED_PR_WEIGHT = 10
CLOSED_ISSUE_WEIGHT = 5
OPENED_PR_WEIGHT = 3

HOTSPOT_MIN_CHANGES = 2
HOTSPOT_RISK_SCALE = 10
MAX_HOTSPOTS = 10

TREND_THRESHOLD_PERCENT = 10.0

METRIC_FIELDS = [
    "period_end",
    "commits_count",
    "commits_by_author",
    "files_changed",
    "lines_added",
    "lines_removed",
    "prs_opened",
    "prs_merged",
    "prs_closed",
    "avg_pr_review_hours",
    "avg_pr_merge_hours",
    "issues_opened",
    "issues_closed",
    "avg_issue_resolution_hours",
    "issues_by_label",
    "velocity_score",
    "velocity_trend",
    "velocity_change_percent",
    "active_contributors",
    "hot_spots",
]


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def _average(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def summarize_activity(
    project_id: uuid.UUID,
    activity: Dict[str, List[Dict[str, Any]]],
    period_start: datetime,
    period_end: datetime,
    analyzed_at: datetime,
) -> GitHubAnalysis:
    """
    Compute window metrics from normalized issue and pull request rows.

    Args:
        project_id: Project the repository belongs to
        activity: Output of GitHubClient.fetch_activity
        period_start: Window start
        period_end: Window end
        analyzed_at: Timestamp stamped on the result

    Returns:
        GitHubAnalysis (trend fields left empty)
    """
    issues = activity.get("issues", [])
    pulls = activity.get("pulls", [])

    def in_window(ts: Optional[datetime]) -> bool:
        return ts is not None and period_start <= ts <= period_end

    issues_opened = sum(1 for i in issues if in_window(i["created_at"]))
    issues_closed = sum(1 for i in issues if in_window(i.get("closed_at")))
    prs_opened = sum(1 for p in pulls if in_window(p["created_at"]))
    prs_merged = sum(1 for p in pulls if in_window(p.get("merged_at")))
    prs_closed = sum(1 for p in pulls if in_window(p.get("closed_at")) and not p.get("merged_at"))

    merge_hours = [_hours_between(p["created_at"], p["merged_at"]) for p in pulls if p.get("merged_at")]
    resolution_hours = [_hours_between(i["created_at"], i["closed_at"]) for i in issues if i.get("closed_at")]

    issues_by_label: Counter = Counter()
    for issue in issues:
        issues_by_label.update(issue.get("labels", []))

    # Pull request authorship stands in for commit authorship
    commits_by_author: Counter = Counter(p["user"] for p in pulls if p.get("user"))

    file_changes: Counter = Counter()
    for pull in pulls:
        file_changes.update(pull.get("files", []))

    hot_spots = [
        HotSpot(path=path, changes=changes, risk_score=round(min(1.0, changes / HOTSPOT_RISK_SCALE), 2))
        for path, changes in file_changes.most_common(MAX_HOTSPOTS)
        if changes >= HOTSPOT_MIN_CHANGES
    ]

    contributors = {p["user"] for p in pulls if p.get("user")} | {i["user"] for i in issues if i.get("user")}

    velocity = prs_merged * MERGED_PR_WEIGHT + issues_closed * CLOSED_ISSUE_WEIGHT + prs_opened * OPENED_PR_WEIGHT

    return GitHubAnalysis(
        project_id=project_id,
        period_type=PeriodType.for_hours(_hours_between(period_start, period_end)).value,
        period_start=period_start,
        period_end=period_end,
        commits_count=sum(commits_by_author.values()),
        commits_by_author=dict(commits_by_author),
        files_changed=len(file_changes),
        lines_added=sum(p.get("additions", 0) for p in pulls),
        lines_removed=sum(p.get("deletions", 0) for p in pulls),
        prs_opened=prs_opened,
        prs_merged=prs_merged,
        prs_closed=prs_closed,
        avg_pr_merge_hours=_average(merge_hours),
        issues_opened=issues_opened,
        issues_closed=issues_closed,
        avg_issue_resolution_hours=_average(resolution_hours),
        issues_by_label=dict(issues_by_label),
        velocity_score=float(min(100, velocity)),
        active_contributors=len(contributors),
        hot_spots=hot_spots,
        analyzed_at=analyzed_at,
    )


def compute_data_hash(analysis: GitHubAnalysis) -> str:
    """SHA-256 of the canonical JSON payload."""
    payload = json.dumps(analysis.model_dump(mode="json"), sort_keys=True)
    return hashlib.sha256(payload.encode()).hexdigest()


class GitHubAnalysisService:
    """Loads, computes and caches repository metrics per project window."""

    def __init__(self, client: Optional[GitHubClient] = None, clock=utcnow):
        self.client = client or GitHubClient()
        self.clock = clock

    def analyze(self, db: Session, project_id: uuid.UUID, period_hours: int = 24) -> GitHubAnalysis:
        """
        Return metrics for the last ``period_hours``, from cache when fresh.

        The window start is aligned down to the hour so calls within the
        same hour share one cache row.

        Raises:
            ProjectNotFound: Unknown project
            GitHubNotConfigured: No repository or no API token
            httpx.HTTPError: GitHub API failure after retries
        """
        project = db.query(Project).filter(Project.id == project_id).first()
        if not project:
            raise ProjectNotFound(f"Project {project_id} not found")
        if not project.github_repo or not self.client.is_configured():
            raise GitHubNotConfigured(f"Project {project_id} does not have GitHub integration configured")

        now = self.clock()
        period_end = now
        period_start = now.replace(minute=0, second=0, microsecond=0) - timedelta(hours=period_hours)
        period_type = PeriodType.for_hours(period_hours)

        cached = self.get_cached(db, project_id, period_type, period_start, now)
        if cached:
            logger.info(f"GitHub analysis cache hit for project {project_id} ({period_type.value})")
            return cached

        activity = self.client.fetch_activity(project.github_repo, period_start, period_end)
        analysis = summarize_activity(project_id, activity, period_start, period_end, now)
        analysis.period_type = period_type.value
        self._apply_trend(db, analysis)
        self.store(db, analysis)
        return analysis

    def get_cached(
        self,
        db: Session,
        project_id: uuid.UUID,
        period_type: PeriodType,
        period_start: datetime,
        now: datetime,
    ) -> Optional[GitHubAnalysis]:
        """Newest fresh cache row whose window starts within the requested one."""
        row = (
            db.query(GitHubAnalysisCache)
            .filter(
                GitHubAnalysisCache.project_id == project_id,
                GitHubAnalysisCache.period_type == period_type.value,
                GitHubAnalysisCache.period_start >= period_start,
                GitHubAnalysisCache.is_stale.is_(False),
                GitHubAnalysisCache.expires_at > now,
            )
            .order_by(GitHubAnalysisCache.analyzed_at.desc())
            .first()
        )
        if not row:
            return None
        return self._to_schema(row)

    def store(self, db: Session, analysis: GitHubAnalysis):
        """Upsert on (project_id, period_type, period_start); last writer wins."""
        period_type = PeriodType(analysis.period_type)
        values = analysis.model_dump(mode="json", include=set(METRIC_FIELDS))
        values["period_end"] = analysis.period_end
        values.update(
            project_id=analysis.project_id,
            period_type=period_type.value,
            period_start=analysis.period_start,
            data_hash=compute_data_hash(analysis),
            analyzed_at=analysis.analyzed_at,
            expires_at=analysis.analyzed_at + timedelta(hours=period_type.cache_ttl_hours),
            is_stale=False,
        )

        dialect = db.bind.dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(GitHubAnalysisCache).values(id=uuid.uuid4(), **values)
        elif dialect == "sqlite":
            stmt = sqlite.insert(GitHubAnalysisCache).values(id=uuid.uuid4(), **values)
        else:
            raise NotImplementedError(f"Upsert not supported for dialect {dialect}")

        update_cols = [k for k in values if k not in ("project_id", "period_type", "period_start")]
        stmt = stmt.on_conflict_do_update(
            index_elements=["project_id", "period_type", "period_start"],
            set_={col: stmt.excluded[col] for col in update_cols},
        )
        db.execute(stmt)
        db.commit()

    def invalidate(self, db: Session, project_id: uuid.UUID) -> int:
        """Mark every cached window of a project stale (e.g. after a push)."""
        count = (
            db.query(GitHubAnalysisCache)
            .filter(GitHubAnalysisCache.project_id == project_id, GitHubAnalysisCache.is_stale.is_(False))
            .update({GitHubAnalysisCache.is_stale: True}, synchronize_session=False)
        )
        db.commit()
        return count

    def _apply_trend(self, db: Session, analysis: GitHubAnalysis):
        previous = (
            db.query(GitHubAnalysisCache)
            .filter(
                GitHubAnalysisCache.project_id == analysis.project_id,
                GitHubAnalysisCache.period_type == analysis.period_type,
                GitHubAnalysisCache.period_start < analysis.period_start,
            )
            .order_by(GitHubAnalysisCache.period_start.desc())
            .first()
        )
        if not previous or not previous.velocity_score:
            return

        change = (analysis.velocity_score - previous.velocity_score) / previous.velocity_score * 100
        analysis.velocity_change_percent = round(change, 1)
        if change > TREND_THRESHOLD_PERCENT:
            analysis.velocity_trend = "increasing"
        elif change < -TREND_THRESHOLD_PERCENT:
            analysis.velocity_trend = "decreasing"
        else:
            analysis.velocity_trend = "stable"

    @staticmethod
    def _to_schema(row: GitHubAnalysisCache) -> GitHubAnalysis:
        return GitHubAnalysis(
            project_id=row.project_id,
            period_type=row.period_type,
            period_start=row.period_start,
            period_end=row.period_end,
            commits_count=row.commits_count or 0,
            commits_by_author=row.commits_by_author or {},
            files_changed=row.files_changed or 0,
            lines_added=row.lines_added or 0,
            lines_removed=row.lines_removed or 0,
            prs_opened=row.prs_opened or 0,
            prs_merged=row.prs_merged or 0,
            prs_closed=row.prs_closed or 0,
            avg_pr_review_hours=row.avg_pr_review_hours,
            avg_pr_merge_hours=row.avg_pr_merge_hours,
            issues_opened=row.issues_opened or 0,
            issues_closed=row.issues_closed or 0,
            avg_issue_resolution_hours=row.avg_issue_resolution_hours,
            issues_by_label=row.issues_by_label or {},
            velocity_score=row.velocity_score,
            velocity_trend=row.velocity_trend,
            velocity_change_percent=row.velocity_change_percent,
            active_contributors=row.active_contributors or 0,
            hot_spots=[HotSpot(**h) for h in row.hot_spots or []],
            analyzed_at=row.analyzed_at,
        )
