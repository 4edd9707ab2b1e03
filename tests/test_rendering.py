from mailroom.config import BrandSettings
from mailroom.rendering import format_body, render_email_html


def test_body_is_escaped_and_line_breaks_preserved() -> None:
    rendered = str(format_body("Hello <b>world</b>\r\nLine2"))
    assert rendered == "Hello &lt;b&gt;world&lt;/b&gt;<br />\nLine2"


def test_brand_name_is_used_without_logo() -> None:
    html = render_email_html("Hi <script>", brand=BrandSettings(name="Acme"), subject="Greetings")

    assert "<title>Greetings</title>" in html
    assert "Acme" in html
    assert "<img" not in html
    assert "Team Acme" in html
    assert "<script>" not in html
    assert "Hi &lt;script&gt;" in html


def test_logo_and_custom_footer() -> None:
    brand = BrandSettings(name="Acme", logo_url="https://cdn.example.com/logo.png", footer="Acme Corp, Springfield")
    html = render_email_html("Body", brand=brand)

    assert 'src="https://cdn.example.com/logo.png"' in html
    assert "Acme Corp, Springfield" in html
    assert "Team Acme" not in html
