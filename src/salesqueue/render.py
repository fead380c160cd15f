"""Markdown rendering of a sales queue digest."""

from jinja2 import Template

from salesqueue.pipedrive.models import Digest

DIGEST_TEMPLATE = Template("""# Sales queue ({{ generated_at }}, {{ timezone }})

- Overdue: {{ stats.overdue_count }}
- Due today: {{ stats.due_today_count }}
- Deals missing next action: {{ stats.missing_next_action_count }}

## Overdue
{% for item in sections.overdue %}
- [{{ item.activity_type }}] {{ item.activity_subject }} (due {{ item.due_date }}{% if item.days_overdue is defined %}, {{ item.days_overdue }} days overdue{% endif %}){% if item.deal %} · [{{ item.deal.title or item.deal.deal_id }}]({{ item.deal.url }}){% if item.deal.stage_name %} / {{ item.deal.stage_name }}{% endif %}{% endif %}{% if item.person %} · {{ item.person.name }}{% if item.person.email %} <{{ item.person.email }}>{% endif %}{% endif %}{% if item.org %} · {{ item.org.name }}{% endif %}
{% else %}
_Nothing overdue._
{% endfor %}

## Due today
{% for item in sections.due_today %}
- [{{ item.activity_type }}] {{ item.activity_subject }}{% if item.deal %} · [{{ item.deal.title or item.deal.deal_id }}]({{ item.deal.url }}){% endif %}{% if item.person %} · {{ item.person.name }}{% if item.person.email %} <{{ item.person.email }}>{% endif %}{% endif %}{% if item.org %} · {{ item.org.name }}{% endif %}
{% else %}
_Nothing due today._
{% endfor %}

## Missing next action
{% for item in sections.missing_next_action %}
- [{{ item.title }}]({{ item.url }}) · {{ item.stage_name }}{% if item.person %} · {{ item.person.name }}{% endif %}{% if item.org %} · {{ item.org.name }}{% endif %}
{% else %}
_Every deal has a next action._
{% endfor %}
""")


def render_markdown(digest: Digest) -> str:
    """Render a digest as a markdown report."""
    return DIGEST_TEMPLATE.render(**digest.model_dump())
