# src/ksnotify/classifier.py
import logging
import re

from .models import ClassifiedReport, ResourceChangeSet

logger = logging.getLogger(__name__)

ADDED_KIND_PATTERN = re.compile(r"^\+kind: ", re.MULTILINE)
REMOVED_KIND_PATTERN = re.compile(r"^-kind: ", re.MULTILINE)


def classify_changes(change_set: ResourceChangeSet) -> ClassifiedReport:
    """
    Partitions resources into created, pruned and configured.

    A whole manifest being added shows up as "+kind: ...", a whole manifest
    being deleted as "-kind: ...". Each rule is checked on its own, so a
    resource whose kind changed is reported as both created and pruned.
    Everything else is configured.
    """
    created, pruned, configured = [], [], []
    for key, body in change_set.items():
        is_created = ADDED_KIND_PATTERN.search(body) is not None
        is_pruned = REMOVED_KIND_PATTERN.search(body) is not None
        if is_created:
            created.append(key)
        if is_pruned:
            pruned.append(key)
        if not is_created and not is_pruned:
            configured.append(key)

    report = ClassifiedReport(
        created=sorted(created),
        pruned=sorted(pruned),
        configured=sorted(configured),
        changes=dict(change_set),
    )
    logger.info(
        f"Classified changes: {len(report.created)} created, "
        f"{len(report.pruned)} pruned, {len(report.configured)} configured."
    )
    return report
