"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

html_text.py - HTML helpers shared by the XML quiz adapters

Question and option bodies in LMS exports are usually HTML (often inside
CDATA). For display we want plain text; images referenced from that HTML
are resolved separately and then dropped from the text.
"""

from __future__ import annotations

import re
from typing import List, Optional
from xml.etree import ElementTree as ET

from bs4 import BeautifulSoup


IMG_TAG_RE = re.compile(r"<img[^>]*>", re.IGNORECASE)
IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["'][^>]*>""", re.IGNORECASE)


def strip_html_tags(html: Optional[str]) -> str:
    """
    Strip HTML tags, decode entities and collapse whitespace.

    Example:
        >>> strip_html_tags("<p>Is 2 &lt; 3?</p>\\n<p>Yes</p>")
        'Is 2 < 3? Yes'
    """
    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text()
    return re.sub(r"\s+", " ", text).strip()


def looks_like_html(text: str) -> bool:
    return "<" in text and ">" in text


def raw_mattext(elem: Optional[ET.Element]) -> str:
    """Raw (possibly HTML) content of a mattext-like element."""
    if elem is None:
        return ""
    return "".join(elem.itertext())


def extract_mattext_text(elem: Optional[ET.Element]) -> str:
    """
    Display text of a QTI mattext (or mat_formattedtext) element.

    CDATA content arrives as plain element text; markup is only stripped
    when angle brackets are present.
    """
    text = raw_mattext(elem)
    if looks_like_html(text):
        text = strip_html_tags(text)
    return text.strip()


def find_image_sources(html: str) -> List[str]:
    """All <img src> values in document order."""
    return IMG_SRC_RE.findall(html or "")


def remove_img_tags(text: str) -> str:
    return IMG_TAG_RE.sub("", text).strip()
