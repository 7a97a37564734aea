"""Project generation package."""

from .service import (
    MaterializationFailedError,
    ScaffoldService,
    TargetNotEmptyError,
    TemplateMaterializer,
    project_variables,
)

__all__ = [
    "MaterializationFailedError",
    "ScaffoldService",
    "TargetNotEmptyError",
    "TemplateMaterializer",
    "project_variables",
]
