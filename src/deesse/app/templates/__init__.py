"""Template resolution package."""

from .service import TemplateResolver, build_template_repository

__all__ = ["TemplateResolver", "build_template_repository"]
