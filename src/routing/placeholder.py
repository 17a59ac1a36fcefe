"""
Placeholder images rendered as base64 SVG data URLs.
"""

import base64
from xml.sax.saxutils import escape

from src.routing.image_providers import parse_dimensions
from src.routing.stock_images import extract_search_terms

_SVG_TEMPLATE = """<svg width="{width}" height="{height}" xmlns="http://www.w3.org/2000/svg">
  <rect width="100%" height="100%" fill="#f0f0f0"/>
  <rect x="10%" y="10%" width="80%" height="80%" fill="#e0e0e0" stroke="#d0d0d0" stroke-width="2"/>
  <text x="50%" y="45%" text-anchor="middle" font-family="Arial, sans-serif" font-size="24" fill="#666">Image Placeholder</text>
  <text x="50%" y="55%" text-anchor="middle" font-family="Arial, sans-serif" font-size="16" fill="#888">{keywords}</text>
  <text x="50%" y="65%" text-anchor="middle" font-family="Arial, sans-serif" font-size="12" fill="#aaa">{width} × {height}</text>
</svg>"""


def render_placeholder(prompt: str, dimensions: str | None = None) -> str:
    """SVG placeholder showing up to 3 prompt keywords and the dimensions."""
    width, height = parse_dimensions(dimensions)
    keywords = " • ".join(extract_search_terms(prompt, limit=3))
    svg = _SVG_TEMPLATE.format(width=width, height=height, keywords=escape(keywords))
    return "data:image/svg+xml;base64," + base64.b64encode(svg.encode("utf-8")).decode("ascii")
