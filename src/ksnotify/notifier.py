# src/ksnotify/notifier.py
import logging
from typing import Optional

from .ci import CIContext
from .exceptions import ThreadResolutionError
from .models import ActionKind, ReconcileAction, RenderedReport, ThreadIdentity
from .scm_client import BaseSCMClient

logger = logging.getLogger(__name__)

LIST_COMMENTS_LIMIT = 300
LIST_REQUESTS_LIMIT = 100


class ThreadResolver:
    """
    Finds the pull/merge request number to comment on.
    """

    def __init__(self, client: BaseSCMClient, allow_sha_fallback: bool = True):
        self.client = client
        self.allow_sha_fallback = allow_sha_fallback

    def resolve(self, thread: ThreadIdentity) -> Optional[int]:
        """
        Returns the request number given by CI, or the first open request
        containing the commit. Returns None when there is nothing to look up.

        Raises:
            ThreadResolutionError: if the commit lookup finds no open request.
        """
        if thread.number is not None:
            return thread.number

        if not self.allow_sha_fallback or not thread.commit_sha:
            logger.info("Request number is not set and no commit lookup applies.")
            return None

        logger.info(f"Request number is not set, looking up open requests for commit {thread.commit_sha}")
        numbers = self.client.find_requests_by_sha(thread.commit_sha, LIST_REQUESTS_LIMIT)
        if not numbers:
            raise ThreadResolutionError("No open merge request found for commit", commit_sha=thread.commit_sha)
        logger.info(f"Resolved request {numbers[0]} from commit {thread.commit_sha}")
        return numbers[0]


class CommentReconciler:
    """
    Decides whether a report becomes a new comment or replaces the comment
    of a previous run for the same target.
    """

    def __init__(self, client: BaseSCMClient):
        self.client = client

    def reconcile(self, thread_number: Optional[int], report: RenderedReport, patch: bool) -> ReconcileAction:
        if thread_number is None:
            return ReconcileAction(ActionKind.SKIP)
        if not patch:
            return ReconcileAction(ActionKind.CREATE, thread_number=thread_number)

        logger.info("Looking for a comment of the same build")
        for comment in self.client.list_comments(thread_number, LIST_COMMENTS_LIMIT):
            if report.is_same_build(comment.body):
                logger.info(f"Found comment {comment.id} of the same build")
                return ReconcileAction(ActionKind.UPDATE, thread_number=thread_number, comment_id=comment.id)
        return ReconcileAction(ActionKind.CREATE, thread_number=thread_number)

    def execute(self, action: ReconcileAction, report: RenderedReport) -> None:
        if action.kind == ActionKind.CREATE:
            self.client.create_comment(action.thread_number, report.body)
        elif action.kind == ActionKind.UPDATE:
            self.client.update_comment(action.thread_number, action.comment_id, report.body)
        else:
            self.client.handle_unresolved_thread(report.body)


class Notifier:
    """Resolves the request of the current run and posts (or updates) the report on it."""

    def __init__(self, client: BaseSCMClient, context: CIContext):
        self.client = client
        self.context = context
        self.resolver = ThreadResolver(
            client, allow_sha_fallback=context.allow_sha_fallback and client.supports_thread_lookup
        )
        self.reconciler = CommentReconciler(client)

    def notify(self, report: RenderedReport, patch: bool) -> ReconcileAction:
        logger.info(f"Notifying via {self.client.name}")
        thread_number = self.resolver.resolve(self.context.thread)
        action = self.reconciler.reconcile(thread_number, report, patch)
        logger.info(f"Reconcile action: {action.kind.value}")
        self.reconciler.execute(action, report)
        return action
