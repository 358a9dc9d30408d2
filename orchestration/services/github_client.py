"""GitHub REST client with retries."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential

from orchestration.config import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = [429, 500, 502, 503]


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    """GitHub ISO-8601 'Z' timestamp to naive UTC."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)


class GitHubClient:
    """Read-only repository activity source."""

    PER_PAGE = 100
    MAX_PAGES = 5

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the GitHub client."""
        self.token = settings.GITHUB_TOKEN if token is None else token
        self.base_url = (base_url or settings.GITHUB_API_URL).rstrip("/")
        self.timeout = timeout or settings.GITHUB_TIMEOUT_SECONDS
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.token)

    def _build_headers(self) -> Dict[str, str]:
        """Build HTTP headers for the GitHub API."""
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _get(self, client: httpx.Client, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = client.get(f"{self.base_url}{path}", headers=self._build_headers(), params=params)

        if response.status_code in RETRYABLE_STATUS:
            logger.warning(f"Retryable error {response.status_code} from GitHub for {path}")
            raise httpx.HTTPStatusError(
                f"Retryable error: {response.status_code}",
                request=response.request,
                response=response,
            )

        response.raise_for_status()
        return response.json()

    def _paginate(self, client: httpx.Client, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        items = []
        for page in range(1, self.MAX_PAGES + 1):
            batch = self._get(client, path, {**params, "per_page": self.PER_PAGE, "page": page})
            items.extend(batch)
            if len(batch) < self.PER_PAGE:
                break
        return items

    def fetch_activity(self, repo: str, since: datetime, until: datetime) -> Dict[str, List[Dict[str, Any]]]:
        """
        Fetch issues and pull requests touched in a window.

        Args:
            repo: "owner/name"
            since: Window start (naive UTC)
            until: Window end (naive UTC)

        Returns:
            {"issues": [...], "pulls": [...]} with normalized rows

        Raises:
            httpx.HTTPError: On API errors after retries
        """
        logger.info(f"Fetching GitHub activity for {repo} from {since.isoformat()} to {until.isoformat()}")

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            raw_issues = self._paginate(
                client,
                f"/repos/{repo}/issues",
                {"state": "all", "since": since.isoformat() + "Z"},
            )
            raw_pulls = self._paginate(
                client,
                f"/repos/{repo}/pulls",
                {"state": "all", "sort": "updated", "direction": "desc"},
            )

            issues = []
            for item in raw_issues:
                # The issues endpoint also lists pull requests
                if "pull_request" in item:
                    continue
                created = _parse_ts(item.get("created_at"))
                if created is None or created > until:
                    continue
                issues.append(
                    {
                        "number": item.get("number"),
                        "user": (item.get("user") or {}).get("login"),
                        "labels": [label["name"] for label in item.get("labels", []) if label.get("name")],
                        "created_at": created,
                        "closed_at": _parse_ts(item.get("closed_at")),
                    }
                )

            pulls = []
            for item in raw_pulls:
                updated = _parse_ts(item.get("updated_at"))
                if updated is not None and updated < since:
                    continue
                created = _parse_ts(item.get("created_at"))
                if created is None or created > until:
                    continue
                files = self._get(client, f"/repos/{repo}/pulls/{item['number']}/files", {"per_page": self.PER_PAGE})
                pulls.append(
                    {
                        "number": item["number"],
                        "user": (item.get("user") or {}).get("login"),
                        "created_at": created,
                        "merged_at": _parse_ts(item.get("merged_at")),
                        "closed_at": _parse_ts(item.get("closed_at")),
                        "additions": sum(f.get("additions", 0) for f in files),
                        "deletions": sum(f.get("deletions", 0) for f in files),
                        "files": [f["filename"] for f in files if f.get("filename")],
                    }
                )

        logger.info(f"GitHub activity for {repo}: {len(issues)} issues, {len(pulls)} pull requests")
        return {"issues": issues, "pulls": pulls}
