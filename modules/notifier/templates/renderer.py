"""
Template Renderer.

Loads email templates from a store, caches them for the life of the
renderer, and substitutes `{{key}}` placeholders using Jinja2. `.mjml`
templates are compiled to HTML after substitution; MJML warnings are
logged and returned with the output, they do not fail the render.

Placeholders with no matching variable are left in the output verbatim as
`{{key}}` and reported as warnings; they are never blanked or rejected.

Usage:
    from modules.notifier.templates import FileTemplateStore, TemplateRenderer

    renderer = TemplateRenderer(FileTemplateStore(Path("templates/email")))
    source = renderer.load("email-verification.html")
    output = renderer.render(source, {"username": "alice", "link": "https://..."})
"""

import io
from dataclasses import dataclass, field
from pathlib import Path

from jinja2 import ChainableUndefined, Environment, Template, TemplateSyntaxError, meta
from jinja2 import TemplateError as JinjaTemplateError
from mjml import mjml_to_html

from modules.notifier.core.exceptions import TemplateCompilationError, TemplateLoadError
from modules.notifier.core.logging import get_logger
from modules.notifier.templates.formatting import DateFormatter

logger = get_logger(__name__)

MARKUP_SUFFIXES = frozenset({".html", ".htm", ".mjml"})
MJML_SUFFIX = ".mjml"


class KeepPlaceholderUndefined(ChainableUndefined):
    """Renders a missing variable back as its `{{name}}` placeholder."""

    __slots__ = ()

    def __str__(self) -> str:
        return "{{" + (self._undefined_name or "") + "}}"


@dataclass(frozen=True)
class TemplateSource:
    """Raw template text as read from the store."""

    name: str
    content: str

    @property
    def is_markup(self) -> bool:
        return Path(self.name).suffix.lower() in MARKUP_SUFFIXES

    @property
    def is_mjml(self) -> bool:
        return Path(self.name).suffix.lower() == MJML_SUFFIX


@dataclass(frozen=True)
class CompiledOutput:
    """Rendered template text and any non-fatal warnings."""

    template_name: str
    content: str
    warnings: tuple[str, ...] = field(default_factory=tuple)


def compile_mjml(template_name: str, markup: str) -> tuple[str, tuple[str, ...]]:
    """
    Compile rendered MJML to email HTML.

    Returns the HTML and the MJML validation messages.

    Raises:
        TemplateCompilationError: the markup cannot be parsed or yields no HTML.
    """
    try:
        result = mjml_to_html(io.BytesIO(markup.encode("utf-8")))
    except Exception as exc:
        raise TemplateCompilationError(template_name, [f"mjml: {exc}"]) from exc

    messages = tuple(f"mjml: {error}" for error in (result.errors or ()))
    if not result.html:
        raise TemplateCompilationError(template_name, list(messages) or ["mjml produced no output"])
    return result.html, messages


class FileTemplateStore:
    """Reads templates from a directory on disk."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def read(self, name: str) -> str:
        root = self.directory.resolve()
        path = (root / name).resolve()
        if root not in path.parents:
            raise TemplateLoadError(name, "name resolves outside the template directory")
        if not path.is_file():
            raise TemplateLoadError(name, f"no such template in {self.directory}")
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise TemplateLoadError(name, str(exc)) from exc


class TemplateRenderer:
    """
    Loads, caches and renders templates.

    Both caches are plain dicts filled on first access. Two concurrent first
    loads of the same name may both read the store; the results are
    identical, so the later write is harmless.
    """

    def __init__(self, store, date_formatter: DateFormatter | None = None) -> None:
        self.store = store
        self.date_formatter = date_formatter or DateFormatter()
        self._sources: dict[str, TemplateSource] = {}
        self._compiled: dict[str, tuple[Template, frozenset[str]]] = {}
        self._markup_env = Environment(
            autoescape=True,
            undefined=KeepPlaceholderUndefined,
            keep_trailing_newline=True,
        )
        self._text_env = Environment(
            autoescape=False,
            undefined=KeepPlaceholderUndefined,
            keep_trailing_newline=True,
        )

    def load(self, template_name: str) -> TemplateSource:
        """Return the template source, reading the store only on first use."""
        cached = self._sources.get(template_name)
        if cached is not None:
            return cached

        content = self.store.read(template_name)
        source = TemplateSource(name=template_name, content=content)
        self._sources[template_name] = source
        logger.debug(
            "Template loaded",
            extra={"template": template_name, "size": len(content)},
        )
        return source

    def _compile(self, source: TemplateSource) -> tuple[Template, frozenset[str]]:
        compiled = self._compiled.get(source.name)
        if compiled is not None:
            return compiled

        env = self._markup_env if source.is_markup else self._text_env
        try:
            ast = env.parse(source.content)
            placeholders = frozenset(meta.find_undeclared_variables(ast))
            template = env.from_string(source.content)
        except TemplateSyntaxError as exc:
            raise TemplateCompilationError(
                source.name, [f"line {exc.lineno}: {exc.message}"],
            ) from exc

        compiled = (template, placeholders)
        self._compiled[source.name] = compiled
        return compiled

    def render(self, source: TemplateSource, variables: dict[str, str]) -> CompiledOutput:
        """
        Substitute variables into a loaded template.

        Raises:
            TemplateCompilationError: if no output can be produced.
        """
        template, placeholders = self._compile(source)

        try:
            content = template.render(variables)
        except JinjaTemplateError as exc:
            raise TemplateCompilationError(source.name, [str(exc)]) from exc

        warnings = tuple(
            f"unresolved placeholder {{{{{name}}}}}"
            for name in sorted(placeholders.difference(variables))
        )
        if warnings:
            logger.warning(
                "Template rendered with unresolved placeholders",
                extra={"template": source.name, "warnings": list(warnings)},
            )

        if source.is_mjml:
            content, mjml_warnings = compile_mjml(source.name, content)
            if mjml_warnings:
                logger.warning(
                    "MJML compiled with warnings",
                    extra={"template": source.name, "warnings": list(mjml_warnings)},
                )
            warnings += mjml_warnings

        return CompiledOutput(template_name=source.name, content=content, warnings=warnings)

    def render_template(self, template_name: str, variables: dict[str, str]) -> CompiledOutput:
        """Load (cached) and render in one call."""
        return self.render(self.load(template_name), variables)

    def format_datetime(self, raw: str, locale: str | None = None) -> str:
        """Format an ISO timestamp for display; returns `raw` on any failure."""
        return self.date_formatter.format(raw, locale)
