# src/ksnotify/scm_client.py
import logging
import sys
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import requests # Using requests library for HTTP calls

from .exceptions import ConfigurationError, SCMAPIError
from .models import ExistingComment

if TYPE_CHECKING:
    from .ci import CIContext
    from .plugin_config import PluginConfig

logger = logging.getLogger(__name__)

GITHUB_API_BASE_URL = "https://api.github.com"
PAGE_SIZE = 100 # Maximum page size of both GitHub and GitLab


class BaseSCMClient:
    """
    Base class for SCM clients. Defines the capabilities the notifier needs:
    listing, creating and updating request comments, and finding the open
    requests that contain a commit.
    """
    name = "base"
    # False for clients that cannot look up requests by commit
    supports_thread_lookup = True

    def __init__(self, config: 'PluginConfig', context: 'CIContext'):
        self.config = config
        self.context = context
        self.api_base_url = ""
        self.headers: Dict[str, str] = {}

    def _request(self, method: str, endpoint: str, params: Optional[Dict] = None, json_data: Optional[Dict] = None,
                 expected_status: int = 200) -> Any:
        """
        Helper method to make HTTP requests.

        Raises:
            SCMAPIError: on transport errors and on any unexpected status code.
        """
        url = f"{self.api_base_url}{endpoint}"
        try:
            logger.debug(f"Making SCM API {method} request to {url} with params {params}")
            response = requests.request(method, url, headers=self.headers, params=params, json=json_data,
                                        timeout=self.config.http_timeout)
        except requests.exceptions.RequestException as e:
            raise SCMAPIError(f"SCM API request failed: {e}", method=method, url=url) from e

        if response.status_code != expected_status:
            raise SCMAPIError(
                f"SCM API request returned unexpected status {response.status_code}",
                method=method, url=url, status_code=response.status_code, response_text=response.text,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise SCMAPIError("SCM API returned invalid JSON", method=method, url=url,
                              status_code=response.status_code) from e

    def _paged(self, endpoint: str, limit: int, params: Optional[Dict] = None) -> List[Dict[str, Any]]:
        """Fetches up to `limit` records of a list endpoint, one page of PAGE_SIZE at a time."""
        records: List[Dict[str, Any]] = []
        page = 1
        while len(records) < limit:
            page_params = dict(params or {})
            page_params.update({"per_page": PAGE_SIZE, "page": page})
            items = self._request("GET", endpoint, params=page_params) or []
            if not isinstance(items, list):
                raise SCMAPIError("SCM API returned a non-list response for a list endpoint",
                                  method="GET", url=f"{self.api_base_url}{endpoint}")
            records.extend(items)
            if len(items) < PAGE_SIZE:
                break
            page += 1
        return records[:limit]

    def list_comments(self, number: int, limit: int) -> List[ExistingComment]:
        raise NotImplementedError

    def create_comment(self, number: int, body: str) -> None:
        raise NotImplementedError

    def update_comment(self, number: int, comment_id: int, body: str) -> None:
        raise NotImplementedError

    def find_requests_by_sha(self, commit_sha: str, limit: int) -> List[int]:
        """Returns the numbers of the open requests containing `commit_sha`."""
        raise NotImplementedError

    def handle_unresolved_thread(self, body: str) -> None:
        logger.info("No pull/merge request to comment on. Skipping notification.")


class GitHubSCMClient(BaseSCMClient):
    name = "github"

    def __init__(self, config: 'PluginConfig', context: 'CIContext'):
        super().__init__(config, context)
        if not config.github_token:
            raise ConfigurationError("GITHUB_TOKEN must be set.", "GITHUB_TOKEN")
        if not (context.owner and context.repo):
            raise ConfigurationError("GitHub repository is unknown, GITHUB_REPOSITORY must be set.",
                                     "GITHUB_REPOSITORY")
        self.api_base_url = (config.api_url or GITHUB_API_BASE_URL).rstrip("/")
        self.headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {config.github_token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self.repo_path = f"/repos/{context.owner}/{context.repo}"
        logger.info(f"SCM Client initialized for base URL: {self.api_base_url}")

    def list_comments(self, number: int, limit: int) -> List[ExistingComment]:
        # issue comments come back oldest first
        items = self._paged(f"{self.repo_path}/issues/{number}/comments", limit)
        return [ExistingComment(id=item["id"], body=item.get("body") or "") for item in items]

    def create_comment(self, number: int, body: str) -> None:
        logger.info(f"Creating comment on PR #{number}")
        self._request("POST", f"{self.repo_path}/issues/{number}/comments", json_data={"body": body},
                      expected_status=201)

    def update_comment(self, number: int, comment_id: int, body: str) -> None:
        logger.info(f"Updating comment {comment_id} on PR #{number}")
        self._request("PATCH", f"{self.repo_path}/issues/comments/{comment_id}", json_data={"body": body})

    def find_requests_by_sha(self, commit_sha: str, limit: int) -> List[int]:
        items = self._paged(f"{self.repo_path}/commits/{commit_sha}/pulls", limit)
        return [item["number"] for item in items if item.get("state", "open") == "open"]


class GitLabSCMClient(BaseSCMClient):
    name = "gitlab"

    def __init__(self, config: 'PluginConfig', context: 'CIContext'):
        super().__init__(config, context)
        if not config.gitlab_token:
            raise ConfigurationError("KSNOTIFY_GITLAB_TOKEN must be set.", "KSNOTIFY_GITLAB_TOKEN")
        if context.project_id is None:
            raise ConfigurationError("GitLab project is unknown, CI_PROJECT_ID must be set.", "CI_PROJECT_ID")
        base = config.api_url or (f"{context.server_url}/api/v4" if context.server_url else None)
        if not base:
            raise ConfigurationError("GitLab API URL is unknown, CI_SERVER_URL must be set.", "CI_SERVER_URL")
        self.api_base_url = base.rstrip("/")
        self.headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {config.gitlab_token}",
        }
        self.project_path = f"/projects/{context.project_id}"
        logger.info(f"SCM Client initialized for base URL: {self.api_base_url}")

    def list_comments(self, number: int, limit: int) -> List[ExistingComment]:
        # API default order is newest first, so the latest report is within the limit
        items = self._paged(f"{self.project_path}/merge_requests/{number}/notes", limit)
        return [ExistingComment(id=item["id"], body=item.get("body") or "") for item in items]

    def create_comment(self, number: int, body: str) -> None:
        logger.info(f"Creating note on MR !{number}")
        self._request("POST", f"{self.project_path}/merge_requests/{number}/notes", json_data={"body": body},
                      expected_status=201)

    def update_comment(self, number: int, comment_id: int, body: str) -> None:
        logger.info(f"Updating note {comment_id} on MR !{number}")
        self._request("PUT", f"{self.project_path}/merge_requests/{number}/notes/{comment_id}",
                      json_data={"body": body})

    def find_requests_by_sha(self, commit_sha: str, limit: int) -> List[int]:
        items = self._paged(f"{self.project_path}/repository/commits/{commit_sha}/merge_requests", limit)
        return [item["iid"] for item in items if item.get("state", "opened") == "opened"]


class LocalSCMClient(BaseSCMClient):
    """
    No-op client for local runs: nothing is sent anywhere and the rendered
    report is written to stdout instead.
    """
    name = "local"
    supports_thread_lookup = False

    def __init__(self, config: 'PluginConfig', context: 'CIContext', stream=None):
        super().__init__(config, context)
        self.stream = stream or sys.stdout

    def list_comments(self, number: int, limit: int) -> List[ExistingComment]:
        return []

    def create_comment(self, number: int, body: str) -> None:
        self.stream.write(body)

    def update_comment(self, number: int, comment_id: int, body: str) -> None:
        self.stream.write(body)

    def find_requests_by_sha(self, commit_sha: str, limit: int) -> List[int]:
        return []

    def handle_unresolved_thread(self, body: str) -> None:
        self.stream.write(body)
        self.stream.flush()


SCM_CLIENTS = {
    "github": GitHubSCMClient,
    "gitlab": GitLabSCMClient,
    "local": LocalSCMClient,
}


def get_scm_client(config: 'PluginConfig', context: 'CIContext') -> BaseSCMClient:
    provider = config.notifier_kind
    client_class = SCM_CLIENTS.get(provider)
    if client_class is None:
        raise ConfigurationError("Unsupported notifier", "notifier", provider)
    return client_class(config, context)
