"""SVG extraction and normalization for generated scene content.

Models wrap SVG in markdown fences, prepend commentary, or omit the root
attributes a browser needs to size the drawing. These helpers pull out the
first complete <svg> element and fill in the missing root attributes.
"""

import re
from typing import Optional

_SVG_ELEMENT = re.compile(r"<svg[\s\S]*?</svg>", re.IGNORECASE)
_CODE_BLOCK = re.compile(r"```(?:svg|html|xml)?\s*([\s\S]*?)```")

_DEFAULT_ATTRIBUTES = (
    ("xmlns", 'xmlns="http://www.w3.org/2000/svg"'),
    ("viewBox", 'viewBox="0 0 800 600"'),
    ("width", 'width="800"'),
    ("height", 'height="600"'),
)


def extract_svg(text: str) -> tuple[Optional[str], str]:
    """Split a model response into (svg, remaining text).

    Returns (None, text) when no complete <svg> element is present.
    """
    if not text:
        return None, ""

    match = _SVG_ELEMENT.search(text)
    if match is None:
        block = _CODE_BLOCK.search(text)
        if block is None:
            return None, text.strip()
        match = _SVG_ELEMENT.search(block.group(1))
        if match is None:
            return None, text.strip()
        svg = match.group(0)
        return svg, text.replace(block.group(0), "").strip()

    svg = match.group(0)
    remainder = text.replace(svg, "").strip()
    # Drop fences left empty by the extraction
    remainder = re.sub(r"```(?:svg|html|xml)?\s*```", "", remainder).strip()
    return svg, remainder


def add_missing_attributes(svg: str) -> str:
    """Insert default xmlns/viewBox/width/height on the root element."""
    root_end = svg.find(">")
    root = svg[:root_end] if root_end != -1 else svg
    result = svg
    for name, attribute in _DEFAULT_ATTRIBUTES:
        if not re.search(rf"\s{name}\s*=", root):
            result = result.replace("<svg", f"<svg {attribute}", 1)
    return result


def normalize_svg(text: str) -> Optional[str]:
    """Extract and normalize the SVG in `text`, or None if there is none."""
    svg, _ = extract_svg(text)
    if svg is None:
        return None
    # Root tag lower-cased; the content marker and attribute insertion expect "<svg"
    svg = "<svg" + svg[4:-6] + "</svg>"
    return add_missing_attributes(svg)


def has_content_marker(content: Optional[str], marker: str = "<svg") -> bool:
    """Minimal structural check: non-empty and contains the expected marker."""
    if not content or not content.strip():
        return False
    return marker in content
