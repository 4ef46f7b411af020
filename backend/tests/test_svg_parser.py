"""Tests for SVG extraction and normalization."""

from storypipe.services.svg_parser import (
    add_missing_attributes,
    extract_svg,
    has_content_marker,
    normalize_svg,
)

FULL_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 800 600" width="800" height="600">'
    "<circle r=\"5\"/></svg>"
)


def test_extract_plain_svg():
    svg, remainder = extract_svg(f"Here you go:\n{FULL_SVG}\nEnjoy!")
    assert svg == FULL_SVG
    assert remainder == "Here you go:\n\nEnjoy!"


def test_extract_fenced_svg():
    text = f"A bouncing ball.\n```svg\n{FULL_SVG}\n```"
    svg, remainder = extract_svg(text)
    assert svg == FULL_SVG
    assert remainder == "A bouncing ball."


def test_extract_without_svg():
    assert extract_svg("I can't draw that.") == (None, "I can't draw that.")
    assert extract_svg("") == (None, "")


def test_extract_requires_closing_tag():
    svg, _ = extract_svg('<svg viewBox="0 0 10 10"><rect/>')
    assert svg is None


def test_add_missing_attributes():
    result = add_missing_attributes("<svg><rect/></svg>")
    assert 'xmlns="http://www.w3.org/2000/svg"' in result
    assert 'viewBox="0 0 800 600"' in result
    assert 'width="800"' in result
    assert 'height="600"' in result
    assert result.endswith("<rect/></svg>")


def test_add_missing_attributes_keeps_existing():
    svg = '<svg viewBox="0 0 100 100" width="100"><rect width="5"/></svg>'
    result = add_missing_attributes(svg)
    assert result.count("viewBox") == 1
    assert 'width="100"' in result
    assert 'height="600"' in result


def test_normalize_svg():
    result = normalize_svg("```xml\n<svg><g/></svg>\n```")
    assert result is not None
    assert result.startswith("<svg ")
    assert "xmlns=" in result
    assert normalize_svg("no drawing here") is None



def test_normalize_svg_lowercases_root_tag():
    result = normalize_svg('<SVG viewBox="0 0 10 10"><rect/></SVG>')
    assert result.startswith("<svg ")
    assert result.endswith("</svg>")
    assert 'viewBox="0 0 10 10"' in result
    assert result.count("viewBox") == 1
    assert has_content_marker(result)


def test_has_content_marker():
    assert has_content_marker(FULL_SVG)
    assert not has_content_marker("")
    assert not has_content_marker("   ")
    assert not has_content_marker(None)
    assert not has_content_marker("plain text")
    assert has_content_marker("<scene/>", marker="<scene")
