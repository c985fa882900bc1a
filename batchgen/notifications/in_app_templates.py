"""Templates for in-app notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class InAppTemplate:
  """Define an in-app notification template."""

  template_id: str
  title_template: str
  body_template: str
  required_keys: set[str]
  importance: str = "normal"


TEMPLATES: dict[str, InAppTemplate] = {
  "generation_job_completed_v1": InAppTemplate(
    template_id="generation_job_completed_v1",
    title_template="Your posts are ready",
    body_template="All {{target_count}} posts for '{{keyword}}' are ready.",
    required_keys={"keyword", "target_count"},
  ),
  "generation_job_failed_v1": InAppTemplate(
    template_id="generation_job_failed_v1",
    title_template="Post generation incomplete",
    body_template="{{completed_count}} of {{target_count}} posts for '{{keyword}}' were generated. Unused credits have been refunded.",
    required_keys={"keyword", "completed_count", "target_count"},
    importance="high",
  ),
}


def render_in_app_template(*, template_id: str, data: dict[str, Any]) -> tuple[str, str]:
  """Render a template into a title and body string."""
  template = TEMPLATES.get(template_id)
  if template is None:
    raise ValueError(f"Unknown in-app template: {template_id}")
  missing = sorted(template.required_keys - set(data.keys()))
  if missing:
    raise ValueError(f"Missing placeholders for template '{template_id}': {', '.join(missing)}")
  title = template.title_template
  body = template.body_template
  for key, value in data.items():
    title = title.replace(f"{{{{{key}}}}}", str(value))
    body = body.replace(f"{{{{{key}}}}}", str(value))
  return title, body


def template_importance(template_id: str) -> str:
  template = TEMPLATES.get(template_id)
  return template.importance if template is not None else "normal"
