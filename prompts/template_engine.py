"""Prompt template engine with {{variable}} substitution and {{include:file}} directives."""

import os
import re
from assistant.exceptions import PromptTemplateError


PROMPTS_DIR = os.path.dirname(os.path.abspath(__file__))

_INCLUDE_RE = re.compile(r"\{\{include:([^}]+)\}\}")


class PromptTemplateEngine:
    """Renders markdown prompt templates from a profile directory."""

    def __init__(self, prompts_dir: str = PROMPTS_DIR, profile: str = "default"):
        self.base_dir = os.path.join(prompts_dir, profile)
        if not os.path.isdir(self.base_dir):
            raise PromptTemplateError(f"Prompts directory not found: {self.base_dir}")

    def render(self, template_name: str, variables: dict | None = None) -> str:
        """Load a template, resolve includes, then substitute variables."""
        template = self._read(template_name)
        template = self._resolve_includes(template, depth=0)
        for key, value in (variables or {}).items():
            template = template.replace("{{" + key + "}}", str(value))
        return template.strip()

    def _resolve_includes(self, template: str, depth: int) -> str:
        if depth > 10:
            raise PromptTemplateError("Include depth exceeded 10 - possible circular reference")

        def replacer(match):
            content = self._read(match.group(1).strip())
            return self._resolve_includes(content, depth + 1).strip()

        return _INCLUDE_RE.sub(replacer, template)

    def _read(self, name: str) -> str:
        path = os.path.join(self.base_dir, name)
        if not os.path.exists(path):
            raise PromptTemplateError(f"Template not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
