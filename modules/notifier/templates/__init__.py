"""
Email template loading, rendering and date formatting.
"""

from modules.notifier.templates.formatting import DateFormatter
from modules.notifier.templates.renderer import (
    CompiledOutput,
    FileTemplateStore,
    TemplateRenderer,
    TemplateSource,
)

__all__ = [
    "CompiledOutput",
    "DateFormatter",
    "FileTemplateStore",
    "TemplateRenderer",
    "TemplateSource",
]
