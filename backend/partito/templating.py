"""Jinja2 environment for the HTML this service renders: share previews and email bodies."""
import os

import jinja2

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")

env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(TEMPLATES_DIR),
    autoescape=True,
)


def render(template_name: str, **context) -> str:
    return env.get_template(template_name).render(**context)
