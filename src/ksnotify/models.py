# src/ksnotify/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

# resource key (e.g. "apps.v1.Deployment.default.web") -> filtered diff body.
# Plain dicts keep insertion order; a repeated key overwrites the earlier body.
ResourceChangeSet = Dict[str, str]


@dataclass(frozen=True)
class RawDiffBlock:
    """
    One contiguous diff section for a single Kubernetes resource.
    """
    resource_key: str # Last path segment of the first path on the "diff -u -N" header
    body: str # Everything between this header group and the next one, trimmed


@dataclass
class ClassifiedReport:
    """
    Resources partitioned by the kind of change. The categories are not exclusive:
    a resource whose kind changed is both created and pruned.
    """
    created: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    configured: List[str] = field(default_factory=list)
    changes: ResourceChangeSet = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.changes


@dataclass(frozen=True)
class RenderedReport:
    """
    The markdown message posted to the request. `body` starts with `title`,
    which doubles as the fingerprint used to find a previous report.
    """
    title: str
    body: str
    target: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        return self.title

    def is_same_build(self, candidate: str) -> bool:
        """
        Returns True if `candidate` (a comment body) was rendered for the same target.

        Without a target there is nothing to tell two reports apart, so this is
        always False and every run creates a new comment.
        """
        if not self.target:
            return False
        first_line = candidate.split("\n", 1)[0]
        return first_line == self.title


@dataclass
class ThreadIdentity:
    """
    Identifies the pull/merge request of the current CI run. `number` is missing
    for branch pipelines; `commit_sha` is then used for the fallback lookup.
    """
    number: Optional[int] = None
    commit_sha: Optional[str] = None


@dataclass(frozen=True)
class ExistingComment:
    id: int
    body: str


class ActionKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


@dataclass(frozen=True)
class ReconcileAction:
    kind: ActionKind
    thread_number: Optional[int] = None
    comment_id: Optional[int] = None # Only set for UPDATE
