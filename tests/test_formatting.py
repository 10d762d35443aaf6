from rss_frontpage.formatting import format_summary_html


def test_bullets_get_summary_class():
    html = format_summary_html("Overview here.\n\n- one\n- **two**")

    assert "<p>Overview here.</p>" in html
    assert '<ul class="summary-bullets">' in html
    assert "<strong>two</strong>" in html


def test_raw_html_is_not_passed_through():
    html = format_summary_html("<script>alert(1)</script>\n\nText")

    assert "<script>" not in html
    assert "<p>Text</p>" in html


def test_empty_summary():
    assert format_summary_html("") == ""
    assert format_summary_html(None) == ""
