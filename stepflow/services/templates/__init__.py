"""
Pipeline templates: built-ins, the template registry, and pipeline generation.
"""

from .builtin import BUILTIN_TEMPLATE_DATA, builtin_templates
from .generator import generate_pipeline, slugify, template_reference_errors
from .registry import TemplateRegistry, parse_template_json
from .service import TemplateService

__all__ = [
    "BUILTIN_TEMPLATE_DATA",
    "TemplateRegistry",
    "TemplateService",
    "builtin_templates",
    "generate_pipeline",
    "parse_template_json",
    "slugify",
    "template_reference_errors",
]
