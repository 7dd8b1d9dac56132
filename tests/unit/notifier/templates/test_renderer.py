"""Unit tests for template loading and rendering."""

from unittest.mock import MagicMock, patch

import pytest

from modules.notifier.core.exceptions import TemplateCompilationError, TemplateLoadError
from modules.notifier.templates import FileTemplateStore, TemplateRenderer


class TestLoad:
    def test_reads_store_once_per_name(self, template_store):
        renderer = TemplateRenderer(template_store)

        first = renderer.load("greeting.html")
        second = renderer.load("greeting.html")

        assert first is second
        assert template_store.reads == {"greeting.html": 1}

    def test_repeated_renders_do_not_reload(self, template_store):
        renderer = TemplateRenderer(template_store)

        for _ in range(5):
            renderer.render_template("greeting.txt", {"username": "Ali", "link": "x"})

        assert template_store.reads["greeting.txt"] == 1

    def test_missing_template_raises_load_error(self, template_store):
        renderer = TemplateRenderer(template_store)

        with pytest.raises(TemplateLoadError) as exc_info:
            renderer.load("missing.html")

        assert exc_info.value.template_name == "missing.html"
        assert exc_info.value.code == "TEMPLATE_LOAD_FAILED"

    def test_failed_load_is_not_cached(self, template_store):
        renderer = TemplateRenderer(template_store)

        with pytest.raises(TemplateLoadError):
            renderer.load("late.html")
        template_store.templates["late.html"] = "ok"

        assert renderer.load("late.html").content == "ok"


class TestRender:
    def test_substitutes_variables(self, template_store):
        renderer = TemplateRenderer(template_store)

        output = renderer.render_template("greeting.txt", {"username": "Ali", "link": "https://x/y"})

        assert output.content == "Hello Ali\nhttps://x/y\n"
        assert output.warnings == ()

    def test_unresolved_placeholder_kept_with_warning(self, template_store):
        renderer = TemplateRenderer(template_store)

        output = renderer.render_template("greeting.txt", {"username": "Ali"})

        assert "{{link}}" in output.content
        assert output.warnings == ("unresolved placeholder {{link}}",)

    def test_markup_templates_escape_values(self, template_store):
        renderer = TemplateRenderer(template_store)

        output = renderer.render_template(
            "greeting.html",
            {"username": "<script>x</script>", "link": "https://x/?a=1&b=2"},
        )

        assert "<script>" not in output.content
        assert "&lt;script&gt;" in output.content

    def test_text_templates_do_not_escape(self, template_store):
        renderer = TemplateRenderer(template_store)

        output = renderer.render_template("greeting.txt", {"username": "<b>", "link": "a&b"})

        assert output.content.startswith("Hello <b>")
        assert "a&b" in output.content

    def test_syntax_error_raises_compilation_error(self, template_store):
        renderer = TemplateRenderer(template_store)

        with pytest.raises(TemplateCompilationError) as exc_info:
            renderer.render_template("broken.html", {"username": "Ali"})

        assert exc_info.value.code == "TEMPLATE_COMPILATION_FAILED"
        assert exc_info.value.errors


VERIFY_MJML = (
    "<mjml><mj-body><mj-section><mj-column>"
    "<mj-text>Hello {{username}}</mj-text>"
    "<mj-button href=\"{{link}}\">Verify</mj-button>"
    "</mj-column></mj-section></mj-body></mjml>"
)


def _mjml_renderer(template_store) -> TemplateRenderer:
    template_store.templates["verify.mjml"] = VERIFY_MJML
    return TemplateRenderer(template_store)


class TestMjml:
    def test_compiles_to_html_after_substitution(self, template_store):
        renderer = _mjml_renderer(template_store)

        output = renderer.render_template("verify.mjml", {"username": "Ali", "link": "https://x/v?t=1"})

        assert "<mjml>" not in output.content
        assert "<mj-text>" not in output.content
        assert "Hello Ali" in output.content
        assert "https://x/v?t=1" in output.content

    def test_mjml_warnings_are_reported_not_raised(self, template_store):
        renderer = _mjml_renderer(template_store)
        result = MagicMock(html="<html>ok</html>", errors=["mj-text has invalid attribute"])

        with patch("modules.notifier.templates.renderer.mjml_to_html", return_value=result):
            output = renderer.render_template("verify.mjml", {"username": "Ali", "link": "l"})

        assert output.content == "<html>ok</html>"
        assert output.warnings == ("mjml: mj-text has invalid attribute",)

    def test_unparseable_mjml_is_compilation_error(self, template_store):
        renderer = _mjml_renderer(template_store)

        with patch(
            "modules.notifier.templates.renderer.mjml_to_html", side_effect=ValueError("not well-formed"),
        ):
            with pytest.raises(TemplateCompilationError) as exc_info:
                renderer.render_template("verify.mjml", {"username": "Ali", "link": "l"})

        assert exc_info.value.errors == ["mjml: not well-formed"]

    def test_html_templates_are_not_passed_to_mjml(self, template_store):
        renderer = TemplateRenderer(template_store)

        with patch("modules.notifier.templates.renderer.mjml_to_html") as compile_mjml:
            renderer.render_template("greeting.html", {"username": "Ali", "link": "l"})

        compile_mjml.assert_not_called()


class TestFileTemplateStore:
    def test_reads_from_directory(self, tmp_path):
        (tmp_path / "hello.txt").write_text("Hi {{username}}", encoding="utf-8")

        assert FileTemplateStore(tmp_path).read("hello.txt") == "Hi {{username}}"

    def test_rejects_path_outside_directory(self, tmp_path):
        inner = tmp_path / "templates"
        inner.mkdir()
        (tmp_path / "secret.txt").write_text("x", encoding="utf-8")

        with pytest.raises(TemplateLoadError):
            FileTemplateStore(inner).read("../secret.txt")

    def test_missing_file(self, tmp_path):
        with pytest.raises(TemplateLoadError):
            FileTemplateStore(tmp_path).read("nope.html")


class TestShippedTemplates:
    """The templates in templates/email render every variable the processors supply."""

    @pytest.mark.parametrize("name", [
        "email-verification.html",
        "email-verification.txt",
        "password-reset.html",
        "password-reset.txt",
    ])
    def test_all_placeholders_resolved(self, renderer, name):
        output = renderer.render_template(name, {
            "username": "Alice",
            "email": "alice@example.com",
            "link": "https://app.example.com/l",
            "expiresAt": "mardi 2 janvier 2024 11:00",
        })

        assert output.warnings == ()
        assert "Alice" in output.content
        assert "https://app.example.com/l" in output.content
