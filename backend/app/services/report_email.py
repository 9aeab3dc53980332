"""Report email rendering and delivery.

Renders a completed AnalysisRecord and its ActionPlan into an HTML and
plain text email using {{variable}} templates, then sends it with the
SMTP client.

ERROR LOGGING REQUIREMENTS:
- Log sends with analysis_id and truncated recipient
- Log render and delivery failures with context
"""

import html
import re
from dataclasses import dataclass
from typing import Any

from app.core.logging import get_logger
from app.integrations.email import EmailClient, EmailResult
from app.models.analysis import AnalysisRecord
from app.services.action_plan import ActionPlan, build_action_plan
from app.services.shipping_extraction import format_threshold

logger = get_logger(__name__)

_VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")

SUBJECT_TEMPLATE = "Your Shipping Action Plan for {{website_url}}"

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Your Shipping Action Plan</title></head>
<body style="font-family: 'Segoe UI', Tahoma, sans-serif; color: #333; font-size: 14px;">
  <h1>Shipping Action Plan</h1>
  <p>Hi {{name}}, here is the competitive shipping analysis for <strong>{{website_url}}</strong>.</p>
  <h2>Competitive Grade: {{grade}}</h2>
  <p>{{grade_message}}</p>
  <p>Average competitor free shipping threshold: <strong>{{average_threshold}}</strong></p>
  <h2>Threshold Options</h2>
  <ul>{{options_html}}</ul>
  <h2>Competitors</h2>
  <table cellpadding="6" style="border-collapse: collapse;">
    <tr><th align="left">Competitor</th><th align="left">Shipping</th></tr>
    {{competitors_html}}
  </table>
  <h2>Recommended Policies</h2>
  <ul>{{policies_html}}</ul>
</body>
</html>
"""

TEXT_TEMPLATE = """Shipping Action Plan for {{website_url}}

Hi {{name}},

Competitive grade: {{grade}}
{{grade_message}}

Average competitor free shipping threshold: {{average_threshold}}

Threshold options:
{{options_text}}

Competitors:
{{competitors_text}}

Recommended policies:
{{policies_text}}
"""


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    body_html: str
    body_text: str


def substitute_variables(template_str: str, variables: dict[str, Any]) -> str:
    """Substitute {{variable}} placeholders, leaving unknown ones as-is."""

    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)
        if var_name in variables:
            value = variables[var_name]
            return str(value) if value is not None else ""
        return match.group(0)

    return _VARIABLE_PATTERN.sub(replace_var, template_str)


def _competitor_rows(record: AnalysisRecord) -> list[dict[str, Any]]:
    return [row for row in record.competitors_data or [] if isinstance(row, dict)]


def render_report_email(
    record: AnalysisRecord,
    plan: ActionPlan,
    name: str | None = None,
) -> RenderedEmail:
    """Render the report email for a completed analysis."""
    competitors = _competitor_rows(record)
    greeting = name or "there"
    average = (
        format_threshold(record.average_threshold)
        if any(c.get("threshold") is not None for c in competitors)
        else "Not available"
    )

    options_text = [f"- ${o.amount}: {o.description}" for o in plan.options]
    competitors_text = [
        f"- {c.get('name', '')} ({c.get('website', '')}): {c.get('shipping_incentives', '')}"
        for c in competitors
    ]

    text_vars = {
        "website_url": record.website_url,
        "name": greeting,
        "grade": plan.grade.grade,
        "grade_message": plan.grade.message,
        "average_threshold": average,
        "options_text": "\n".join(options_text),
        "competitors_text": "\n".join(competitors_text) or "- No competitors found",
        "policies_text": "\n".join(f"- {p}" for p in plan.policies),
    }

    esc = html.escape
    html_vars = {
        "website_url": esc(record.website_url),
        "name": esc(greeting),
        "grade": esc(plan.grade.grade),
        "grade_message": esc(plan.grade.message),
        "average_threshold": esc(average),
        "options_html": "".join(
            f"<li><strong>${o.amount}</strong> - {esc(o.description)}</li>"
            for o in plan.options
        ),
        "competitors_html": "".join(
            f"<tr><td>{esc(str(c.get('name', '')))}<br><small>{esc(str(c.get('website', '')))}</small></td>"
            f"<td>{esc(str(c.get('shipping_incentives', '')))}</td></tr>"
            for c in competitors
        ),
        "policies_html": "".join(f"<li>{esc(p)}</li>" for p in plan.policies),
    }

    return RenderedEmail(
        subject=substitute_variables(SUBJECT_TEMPLATE, {"website_url": record.website_url}),
        body_html=substitute_variables(HTML_TEMPLATE, html_vars),
        body_text=substitute_variables(TEXT_TEMPLATE, text_vars),
    )


class ReportEmailService:
    """Sends action plan emails for completed analyses."""

    def __init__(self, email_client: EmailClient) -> None:
        self._email_client = email_client

    @property
    def available(self) -> bool:
        return self._email_client.available

    async def send_report(
        self,
        record: AnalysisRecord,
        recipient: str,
        name: str | None = None,
        user_threshold: float | None = None,
    ) -> EmailResult:
        """Render and send the action plan for a completed analysis."""
        plan = build_action_plan(
            user_threshold,
            (row.get("threshold") for row in _competitor_rows(record)),
        )
        rendered = render_report_email(record, plan, name)
        logger.info(
            "Sending analysis report email",
            extra={
                "analysis_id": record.id,
                "recipient": recipient[:50],
                "grade": plan.grade.grade,
            },
        )
        return await self._email_client.send(
            recipient=recipient,
            subject=rendered.subject,
            body_html=rendered.body_html,
            body_text=rendered.body_text,
        )
