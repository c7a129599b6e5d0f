"""
SVG post-processing - text-level canonicalization of tracer output

Works on markup text, not a DOM: only the root <svg>, <path> and <rect>
start tags are tokenized, and edits are spliced into the original text so
everything else passes through byte-for-byte.

Order matters (see canonicalize):
    coerce -> ensure viewBox -> recolor paths -> strip white background
    -> inject background (only when not transparent)
"""
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple, Union
import logging
import math
import re

logger = logging.getLogger(__name__)

DEFAULT_SIZE = 1024
SVG_NS = "http://www.w3.org/2000/svg"
FALLBACK_OPEN = (
    f'<svg xmlns="{SVG_NS}" width="{DEFAULT_SIZE}" height="{DEFAULT_SIZE}" '
    f'viewBox="0 0 {DEFAULT_SIZE} {DEFAULT_SIZE}">'
)

Number = Union[int, float]

TAG_RE = re.compile(
    r"<(?P<name>svg|path|rect)(?=[\s/>])"
    r"(?P<attrs>(?:[^>\"']|\"[^\"]*\"|'[^']*')*?)"
    r"(?P<close>\s*/?)>",
    re.IGNORECASE,
)
ATTR_RE = re.compile(r"\s*(?P<name>[^\s=/>\"']+)\s*=\s*(?P<q>[\"'])(?P<value>.*?)(?P=q)", re.DOTALL)
PROLOG_RE = re.compile(r"^(?:\s*(?:<\?.*?\?>|<!--.*?-->|<!DOCTYPE[^>]*>))*\s*", re.IGNORECASE | re.DOTALL)
SVG_START_RE = re.compile(r"<svg(?=[\s/>])", re.IGNORECASE)
LENGTH_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:px)?\s*$", re.IGNORECASE)
WHITE_RE = re.compile(
    r"^\s*(?:#ffffff|#fff|white"
    r"|rgb\(\s*255\s*,\s*255\s*,\s*255\s*\)"
    r"|rgba\(\s*255\s*,\s*255\s*,\s*255\s*,\s*1(?:\.0*)?\s*\))\s*$",
    re.IGNORECASE,
)
RECT_CLOSE_RE = re.compile(r"</rect\s*>", re.IGNORECASE)


@dataclass(frozen=True)
class SvgDocument:
    """SVG markup plus its canonical pixel dimensions"""
    markup: str
    width: Number = DEFAULT_SIZE
    height: Number = DEFAULT_SIZE


@dataclass(frozen=True)
class BackgroundSpec:
    """Transparent output, or an opaque background rect of `color`"""
    transparent: bool = True
    color: str = "#ffffff"


@dataclass
class Attribute:
    name: str
    value: str
    start: int  # offsets inside StartTag.text
    end: int


@dataclass
class StartTag:
    """A tokenized start tag and its position in the document"""
    name: str
    text: str
    start: int
    end: int
    attrs_end: int  # offset in text where the attribute region ends
    self_closing: bool
    attributes: List[Attribute]

    def find(self, name: str) -> Optional[Attribute]:
        name = name.lower()
        for attr in self.attributes:
            if attr.name.lower() == name:
                return attr
        return None

    def get(self, name: str) -> Optional[str]:
        attr = self.find(name)
        return attr.value if attr else None

    def set(self, name: str, value: str) -> str:
        """Tag text with `name` replaced in place, or appended if absent"""
        attr = self.find(name)
        if attr is not None:
            return self.text[:attr.start] + f' {attr.name}="{value}"' + self.text[attr.end:]
        return self.text[:self.attrs_end] + f' {name}="{value}"' + self.text[self.attrs_end:]

    def remove(self, name: str) -> str:
        """Tag text without the first `name` attribute"""
        attr = self.find(name)
        if attr is None:
            return self.text
        return self.text[:attr.start] + self.text[attr.end:]


def _parse_tag(match: "re.Match") -> StartTag:
    text = match.group(0)
    attrs_offset = match.start("attrs") - match.start()
    attrs_text = match.group("attrs")

    attributes = []
    for m in ATTR_RE.finditer(attrs_text):
        attributes.append(Attribute(
            name=m.group("name"),
            value=m.group("value"),
            start=attrs_offset + m.start(),
            end=attrs_offset + m.end(),
        ))

    return StartTag(
        name=match.group("name").lower(),
        text=text,
        start=match.start(),
        end=match.end(),
        attrs_end=attrs_offset + len(attrs_text),
        self_closing=match.group("close").strip() == "/",
        attributes=attributes,
    )


def iter_tags(svg: str, name: Optional[str] = None) -> Iterator[StartTag]:
    """Yield <svg>/<path>/<rect> start tags, optionally filtered by name"""
    for match in TAG_RE.finditer(svg):
        if name is None or match.group("name").lower() == name:
            yield _parse_tag(match)


def find_root(svg: str) -> Optional[StartTag]:
    return next(iter_tags(svg, "svg"), None)


def _splice(svg: str, edits: List[Tuple[int, int, str]]) -> str:
    """Apply (start, end, replacement) edits; edits must not overlap"""
    for start, end, replacement in sorted(edits, key=lambda e: e[0], reverse=True):
        svg = svg[:start] + replacement + svg[end:]
    return svg


def _parse_length(value: Optional[str]) -> Optional[Number]:
    if value is None:
        return None
    m = LENGTH_RE.match(value)
    if not m:
        return None
    number = float(m.group(1))
    return int(number) if number.is_integer() else number


def _round_half_up(value: Number) -> int:
    return int(math.floor(value + 0.5))


def coerce_svg(raw: Optional[str]) -> str:
    """Return markup that starts with an <svg> root, wrapping it if needed"""
    if not raw:
        return FALLBACK_OPEN + "</svg>"

    trimmed = str(raw).strip()
    # Deliberately lenient: a leading XML declaration, comment or DOCTYPE
    # before <svg> counts as a root, rather than wrapping a whole document
    body = PROLOG_RE.sub("", trimmed, count=1)
    if SVG_START_RE.match(body):
        return trimmed

    logger.warning("Tracer output has no <svg> root, wrapping it in a 1024x1024 document")
    return FALLBACK_OPEN + trimmed + "</svg>"


def ensure_viewbox(svg: str) -> SvgDocument:
    """
    Make the root tag responsive.

    Adds viewBox="0 0 W H" (from width/height, default 1024) when missing
    and removes the root's width/height attributes. Idempotent.
    """
    root = find_root(svg)
    if root is None:
        return SvgDocument(markup=svg, width=DEFAULT_SIZE, height=DEFAULT_SIZE)

    width = _parse_length(root.get("width"))
    height = _parse_length(root.get("height"))
    width = DEFAULT_SIZE if width is None else width
    height = DEFAULT_SIZE if height is None else height

    tag = root
    if root.find("viewBox") is None:
        name_end = len("<svg")
        text = (
            root.text[:name_end]
            + f' viewBox="0 0 {_round_half_up(width)} {_round_half_up(height)}"'
            + root.text[name_end:]
        )
        tag = _reparse(text, root.start)

    text = tag.remove("width")
    tag = _reparse(text, root.start)
    text = tag.remove("height")

    markup = svg[:root.start] + text + svg[root.end:]
    return SvgDocument(markup=markup, width=width, height=height)


def _reparse(text: str, offset: int) -> StartTag:
    tag = _parse_tag(TAG_RE.match(text))
    tag.start += offset
    tag.end += offset
    return tag


def recolor_paths(svg: str, fill_color: str) -> str:
    """Set fill on every <path> start tag (replaced, or appended if absent)"""
    edits = [(tag.start, tag.end, tag.set("fill", fill_color)) for tag in iter_tags(svg, "path")]
    return _splice(svg, edits)


def _format_number(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_background_rect(tag: StartTag, width: Number, height: Number) -> bool:
    """Full-canvas white <rect> at the origin"""
    fill = tag.get("fill")
    if fill is None or not WHITE_RE.match(fill):
        return False

    x = (tag.get("x") or "").strip()
    y = (tag.get("y") or "").strip()
    w = (tag.get("width") or "").strip()
    h = (tag.get("height") or "").strip()

    if x == "0" and y == "0":
        if w == _format_number(width) and h == _format_number(height):
            return True
        if _parse_length(w) == width and _parse_length(h) == height:
            return True

    return x in ("0", "0%") and y in ("0", "0%") and w == "100%" and h == "100%"


def strip_background_rect(svg: str, width: Number, height: Number) -> str:
    """Remove white rects that cover the whole (width x height) canvas"""
    edits = []
    for tag in iter_tags(svg, "rect"):
        if not is_background_rect(tag, width, height):
            continue
        end = tag.end
        if not tag.self_closing:
            close = RECT_CLOSE_RE.search(svg, tag.end)
            if close:
                end = close.end()
        edits.append((tag.start, end, ""))

    if edits:
        logger.debug(f"Stripped {len(edits)} full-canvas background rect(s)")
    return _splice(svg, edits)


def inject_background_rect(svg: str, width: Number, height: Number, color: str) -> str:
    """Insert a background rect as the first child of the root"""
    root = find_root(svg)
    if root is None:
        return svg
    rect = (
        f'<rect x="0" y="0" width="{_format_number(width)}" '
        f'height="{_format_number(height)}" fill="{color}"/>'
    )
    return svg[:root.end] + rect + svg[root.end:]


def canonicalize(
    raw: Optional[str],
    line_color: str,
    background: Optional[BackgroundSpec] = None,
) -> SvgDocument:
    """Run the full post-processing chain over raw tracer output"""
    background = background or BackgroundSpec()

    ensured = ensure_viewbox(coerce_svg(raw))
    svg = recolor_paths(ensured.markup, line_color)
    svg = strip_background_rect(svg, ensured.width, ensured.height)
    if not background.transparent:
        svg = inject_background_rect(svg, ensured.width, ensured.height, background.color)

    return SvgDocument(markup=svg, width=ensured.width, height=ensured.height)
