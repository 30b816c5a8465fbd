# src/ksnotify/template.py
import logging
from string import Template
from typing import List, Optional

from .models import ClassifiedReport, RenderedReport

logger = logging.getLogger(__name__)

TITLE = "## Plan result"
NO_CHANGES_NOTICE = "No changes. Kubernetes configurations are up-to-date."

NO_CHANGES_BODY_TEMPLATE = Template("""\
$title

[CI link]( $link )

```
$notice
```
""")

CHANGES_BODY_TEMPLATE = Template("""\
$title

[CI link]( $link )

$changed_kinds

<details><summary>Details (Click me)</summary>

$details

</details>
""")


def render_title(target: Optional[str] = None) -> str:
    if target:
        return f"{TITLE} ({target})"
    return TITLE


class PlanTemplate:
    """
    Renders a classified report into the markdown comment posted on the request.
    """

    def __init__(self, report: ClassifiedReport, link: str, target: Optional[str] = None):
        self.report = report
        self.link = link or ""
        self.target = target or None

    def render(self) -> RenderedReport:
        title = render_title(self.target)
        if self.report.is_empty:
            body = NO_CHANGES_BODY_TEMPLATE.substitute(title=title, link=self.link, notice=NO_CHANGES_NOTICE)
        else:
            body = CHANGES_BODY_TEMPLATE.substitute(
                title=title,
                link=self.link,
                changed_kinds=self.generate_changed_kinds_markdown(),
                details=self.generate_details_markdown(),
            )
        logger.debug(f"Rendered report titled '{title}' ({len(body)} chars).")
        return RenderedReport(title=title, body=body, target=self.target)

    def generate_changed_kinds_markdown(self) -> str:
        """One bullet per non-empty category, in the order created, pruned, configured."""
        sections: List[str] = []
        for name, keys in (
            ("created", self.report.created),
            ("pruned", self.report.pruned),
            ("configured", self.report.configured),
        ):
            if not keys:
                continue
            items = "\n".join(f"  * {key}" for key in keys)
            sections.append(f"* {name}\n{items}")
        return "\n".join(sections)

    def generate_details_markdown(self) -> str:
        changes = self.report.changes
        return "\n".join(
            f"### {key}\n```diff\n{changes[key]}\n```" for key in sorted(changes)
        )


def render_report(report: ClassifiedReport, link: str, target: Optional[str] = None) -> RenderedReport:
    return PlanTemplate(report, link, target).render()
