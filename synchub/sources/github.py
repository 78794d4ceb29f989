"""GitHub source: issues and pull requests from repositories and a search query."""

from datetime import datetime
from typing import Any

from synchub.errors import ConfigurationMissing
from synchub.ingestion.paginated_fetcher import FetchResult, LinkHeaderFetcher
from synchub.models.config import SourceConfig
from synchub.models.items import ChangeMarker, NormalizedRecord, RawItem
from synchub.sources.base import SyncSource, parse_timestamp
from synchub.storage.base import FieldSpec


class GitHubSource(SyncSource):
    """One record per issue or pull request.

    Options:
        repos: list of ``owner/name`` repositories to list issues from
        query: GitHub search query, combined with an ``updated:>=`` qualifier
        projects: mapping of ``owner/name`` (or bare repo name) to a project label
        api_url: API base URL (defaults to api.github.com)
    """

    name = "github"
    display_name = "GitHub"
    change_marker = ChangeMarker(field="updated_at", kind="revision")
    tracked_fields = ("state", "assignee")
    field_specs = (
        FieldSpec(id="source"),
        FieldSpec(id="repo"),
        FieldSpec(id="project"),
        FieldSpec(id="number", kind="number"),
        FieldSpec(id="type", kind="choice", choices={"pr": "PR", "issue": "Issue"}),
        FieldSpec(id="state", kind="choice", choices={"open": "Open", "closed": "Closed"}),
        FieldSpec(id="author"),
        FieldSpec(id="assignee"),
        FieldSpec(id="url"),
        FieldSpec(id="created_at", kind="datetime"),
        FieldSpec(id="updated_at"),
    )

    api_url = "https://api.github.com"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._projects: dict[str, str] = {}

    def validate_config(self, config: SourceConfig) -> None:
        super().validate_config(config)
        if not self._repos(config) and not config.options.get("query"):
            raise ConfigurationMissing("No repos or query configured for github")

    def fetch(self, config: SourceConfig, since: datetime | None) -> FetchResult:
        # normalize() labels records with the project mapping of the current run
        self._projects = dict(config.options.get("projects") or {})
        base_url = str(config.options.get("api_url", self.api_url)).rstrip("/")
        result = FetchResult()

        query = config.options.get("query")
        if query:
            if since is not None:
                query = f"{query} updated:>={since.date().isoformat()}"
            fetcher = self._fetcher(
                config, f"{base_url}/search/issues", params={"q": query, "per_page": 100}
            )
            result = result.merge(fetcher.fetch(None))

        for repo in self._repos(config):
            fetcher = self._fetcher(
                config,
                f"{base_url}/repos/{repo}/issues",
                params={"state": "all", "per_page": 100},
            )
            result = result.merge(fetcher.fetch(since))

        return result

    def _fetcher(self, config: SourceConfig, url: str, params: dict[str, Any]) -> LinkHeaderFetcher:
        return LinkHeaderFetcher(
            url=url,
            item_parser=self.parse_item,
            headers={
                "Authorization": f"token {config.token}",
                "Accept": "application/vnd.github.v3+json",
            },
            params=params,
            session=self.session,
            timeout=self.settings.request_timeout,
            default_retry_after=self.settings.default_retry_after,
            max_rate_limit_retries=self.settings.max_rate_limit_retries,
            sleep=self.sleep,
        )

    @staticmethod
    def _repos(config: SourceConfig) -> list[str]:
        repos = list(config.options.get("repos") or [])
        for repo in config.options.get("projects") or {}:
            if "/" in repo and repo not in repos:
                repos.append(repo)
        return repos

    @staticmethod
    def parse_item(raw: dict[str, Any]) -> RawItem:
        return RawItem(id=raw["id"], updated_at=raw.get("updated_at"), payload=raw)

    @staticmethod
    def repo_from_url(html_url: str) -> str:
        """Extract ``owner/name`` from an issue's html_url."""
        parts = html_url.split("github.com/", 1)
        if len(parts) != 2:
            return ""
        segments = parts[1].split("/")
        if len(segments) < 2:
            return ""
        return f"{segments[0]}/{segments[1]}"

    def project_for(self, repo: str, config_projects: dict[str, str]) -> str | None:
        if repo in config_projects:
            return config_projects[repo]
        return config_projects.get(repo.split("/")[-1])

    def normalize(self, parent: RawItem, children: list[RawItem]) -> NormalizedRecord:
        html_url = parent.get("html_url", "")
        repo = self.repo_from_url(html_url)
        is_pr = parent.get("pull_request") is not None
        title = parent.get("title") or "Untitled"

        fields: dict[str, Any] = {
            "source": self.display_name,
            "repo": repo,
            "number": parent.get("number"),
            "type": "PR" if is_pr else "Issue",
            "state": "Open" if parent.get("state") == "open" else "Closed",
            "author": (parent.get("user") or {}).get("login", ""),
            "assignee": (parent.get("assignee") or {}).get("login", ""),
            "url": html_url,
            "updated_at": parent.updated_at or "",
        }

        project = self.project_for(repo, self._projects)
        if project:
            fields["project"] = project

        created_at = parse_timestamp(parent.get("created_at"))
        if created_at is not None:
            fields["created_at"] = created_at

        return NormalizedRecord(
            external_id=self.external_id(parent),
            title=title,
            fields=fields,
            child_count=0,
        )

    def render_content(self, parent: RawItem, children: list[RawItem]) -> str:
        return str(parent.get("body") or "")
