"""
Unit tests for the Jinja2 view renderer.
"""

from pathlib import Path

import pytest

from httpapp.config import DEFAULT_VIEWS_DIR
from httpapp.http.errors import TemplateRenderError
from httpapp.views import ViewRenderer


@pytest.fixture
def views_dir(tmp_path: Path) -> Path:
    root = tmp_path / "views"
    (root / "posts").mkdir(parents=True)
    (root / "page.html").write_text("<h1>{{ title }}</h1>")
    (root / "site.html").write_text("{{ site_name }}")
    (root / "undefined.html").write_text("{{ missing }}")
    (root / "broken.html").write_text("{% if %}")
    (root / "posts" / "item.html").write_text("{{ post.title }}")
    (root / "note.txt").write_text("{{ title }}")
    return root


class TestViewRenderer:
    """Tests for ViewRenderer."""

    def test_render(self, views_dir):
        renderer = ViewRenderer(views_dir)
        assert renderer.render("page", {"title": "Home"}) == "<h1>Home</h1>"

    def test_render_nested_name(self, views_dir):
        renderer = ViewRenderer(views_dir)
        assert renderer.render("posts/item", {"post": {"title": "First"}}) == "First"

    def test_autoescape(self, views_dir):
        renderer = ViewRenderer(views_dir)
        html = renderer.render("page", {"title": "<script>alert(1)</script>"})

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_template_globals(self, views_dir):
        renderer = ViewRenderer(views_dir, template_globals={"site_name": "pyhttpapp"})
        assert renderer.render("site") == "pyhttpapp"

    @pytest.mark.parametrize("name,expected", [
        ("index", "index.html"),
        ("posts/new", "posts/new.html"),
        ("note.txt", "note.txt"),
    ])
    def test_template_name(self, views_dir, name, expected):
        assert ViewRenderer(views_dir).template_name(name) == expected

    def test_explicit_extension_not_escaped_as_html(self, views_dir):
        renderer = ViewRenderer(views_dir)
        assert renderer.render("note.txt", {"title": "<b>"}) == "<b>"

    def test_undefined_variable(self, views_dir):
        """Test that a missing variable is an error, not an empty string."""
        renderer = ViewRenderer(views_dir)

        with pytest.raises(TemplateRenderError) as exc_info:
            renderer.render("undefined")

        error = exc_info.value
        assert error.status_code == 500
        assert error.expose is False
        assert error.template == "undefined.html"
        assert "missing" in error.message

    def test_missing_template(self, views_dir):
        with pytest.raises(TemplateRenderError) as exc_info:
            ViewRenderer(views_dir).render("nope")

        assert "template not found" in exc_info.value.message

    def test_syntax_error(self, views_dir):
        with pytest.raises(TemplateRenderError) as exc_info:
            ViewRenderer(views_dir).render("broken")

        assert "syntax error on line 1" in exc_info.value.message


class TestBundledTemplates:
    """Tests for the templates that ship with the website."""

    @pytest.fixture
    def renderer(self):
        return ViewRenderer(DEFAULT_VIEWS_DIR, template_globals={"site_name": "pyhttpapp"})

    def test_index_with_lucky_number(self, renderer):
        html = renderer.render("index", {"title": "Home", "lucky_number": "42"})

        assert "<title>Home | pyhttpapp</title>" in html
        assert "42" in html
        assert 'id="things"' in html

    def test_index_without_lucky_number(self, renderer):
        html = renderer.render("index", {"title": "Home", "lucky_number": None})
        assert "<title>Home | pyhttpapp</title>" in html

    def test_new_post_form(self, renderer):
        html = renderer.render("posts/new", {"title": "New post"})

        assert 'action="/posts"' in html
        assert 'name="title"' in html
        assert 'name="content"' in html

    def test_show_post_escapes_input(self, renderer):
        html = renderer.render("posts/show", {
            "title": "Hello",
            "post": {"title": "<i>Hello</i>", "content": "First post"},
        })

        assert "&lt;i&gt;Hello&lt;/i&gt;" in html
        assert "First post" in html
