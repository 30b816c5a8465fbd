# src/ksnotify/ci.py
"""
Reads the CI system's predefined variables once, at startup.

The resulting `CIContext` is passed explicitly to the notifier, so nothing
below this module looks at the process environment.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .exceptions import ConfigurationError
from .models import ThreadIdentity

logger = logging.getLogger(__name__)

DEFAULT_GITHUB_SERVER_URL = "https://github.com"


@dataclass
class CIContext:
    kind: str
    thread: ThreadIdentity = field(default_factory=ThreadIdentity)
    job_url: str = ""
    # Look up the request by commit SHA when no number is given
    allow_sha_fallback: bool = False

    # GitLab
    project_id: Optional[int] = None
    server_url: Optional[str] = None

    # GitHub
    owner: Optional[str] = None
    repo: Optional[str] = None


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise ConfigurationError(f"{name} must be set.", name)
    return value


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} is not a number.", name, value) from None


def gitlab_context(env: Mapping[str, str]) -> CIContext:
    # see: https://docs.gitlab.com/ee/ci/variables/predefined_variables.html
    iid = env.get("CI_MERGE_REQUEST_IID")
    number = _parse_int("CI_MERGE_REQUEST_IID", iid) if iid else None
    commit_sha = _require(env, "CI_COMMIT_SHA")
    job_url = _require(env, "CI_JOB_URL")
    project_id = _parse_int("CI_PROJECT_ID", _require(env, "CI_PROJECT_ID"))

    server_url = env.get("CI_SERVER_URL")
    if not server_url:
        server_url = f"https://{_require(env, 'CI_SERVER_HOST')}"

    return CIContext(
        kind="gitlab",
        thread=ThreadIdentity(number=number, commit_sha=commit_sha),
        job_url=job_url,
        allow_sha_fallback=True,
        project_id=project_id,
        server_url=server_url.rstrip("/"),
    )


def github_context(env: Mapping[str, str]) -> CIContext:
    # Default environment variables in GitHub Actions
    # see: https://docs.github.com/en/actions/writing-workflows/choosing-what-your-workflow-does/store-information-in-variables#default-environment-variables
    repository = _require(env, "GITHUB_REPOSITORY") # <owner>/<repo>
    parts = repository.split("/")
    if len(parts) != 2 or not all(parts):
        raise ConfigurationError("GITHUB_REPOSITORY must look like <owner>/<repo>.", "GITHUB_REPOSITORY", repository)
    owner, repo = parts

    # GITHUB_REF_NAME is like <number>/merge on pull_request events
    ref_name = _require(env, "GITHUB_REF_NAME")
    number = None
    if ref_name.endswith("/merge"):
        number = _parse_int("GITHUB_REF_NAME", ref_name.split("/")[0])
    commit_sha = _require(env, "GITHUB_SHA")

    run_id = _require(env, "GITHUB_RUN_ID")
    server_url = (env.get("GITHUB_SERVER_URL") or DEFAULT_GITHUB_SERVER_URL).rstrip("/")

    return CIContext(
        kind="github",
        thread=ThreadIdentity(number=number, commit_sha=commit_sha),
        job_url=f"{server_url}/{repository}/actions/runs/{run_id}",
        # a branch push has no pull request to comment on
        allow_sha_fallback=False,
        owner=owner,
        repo=repo,
    )


def local_context(env: Mapping[str, str]) -> CIContext:
    return CIContext(kind="local", job_url=env.get("KSNOTIFY_CI_LINK", ""))


def load_ci_context(kind: str, env: Optional[Mapping[str, str]] = None) -> CIContext:
    """
    Builds the CI context for `kind` ("gitlab", "github" or "local").

    Raises:
        ConfigurationError: if a required CI variable is missing or invalid.
    """
    env = os.environ if env is None else env
    logger.info(f"Loading CI context for '{kind}'")
    if kind == "gitlab":
        context = gitlab_context(env)
    elif kind == "github":
        context = github_context(env)
    elif kind == "local":
        context = local_context(env)
    else:
        raise ConfigurationError("Unknown CI kind", "ci", kind)
    logger.debug(f"CI context: thread={context.thread}, job_url={context.job_url}")
    return context
