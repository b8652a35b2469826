# pip install lxml
from lxml import etree
from lxml.cssselect import CSSSelector
from cssselect import GenericTranslator
from functools import lru_cache
import re

SVG_NS = "http://www.w3.org/2000/svg"
NSMAP = {None: SVG_NS}


class _SVGDefaultNamespaceTranslator(GenericTranslator):
    """Ensure bare element selectors target the SVG namespace."""

    def __init__(self, default_prefix="svg"):
        super().__init__()
        self._default_prefix = default_prefix

    def xpath_element(self, selector):
        if (
            self._default_prefix
            and selector.namespace is None
            and selector.element is not None
        ):
            selector = selector.__class__(self._default_prefix, selector.element)
        return super().xpath_element(selector)


_SVG_NAMESPACE_PREFIX = "svg"
_SVG_CSS_TRANSLATOR = _SVGDefaultNamespaceTranslator(default_prefix=_SVG_NAMESPACE_PREFIX)
_SVG_CSS_NAMESPACES = {_SVG_NAMESPACE_PREFIX: SVG_NS}


@lru_cache(maxsize=128)
def _svg_css_selector(css):
    return CSSSelector(
        css,
        translator=_SVG_CSS_TRANSLATOR,
        namespaces=_SVG_CSS_NAMESPACES,
    )


def _normalize_attr_name(name):
    """Convert pythonic attr names (stroke_width) into SVG attrs (stroke-width)."""
    return name.replace("_", "-")


def _el(tag, **attrs):
    el = etree.Element(f"{{{SVG_NS}}}{tag}", nsmap=NSMAP)
    for k, v in attrs.items():
        el.set(_normalize_attr_name(k), str(v))
    return el


_NAMED_COLORS = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "blue": (0, 0, 255),
    "yellow": (255, 255, 0),
    "orange": (255, 165, 0),
    "purple": (128, 0, 128),
    "grey": (128, 128, 128),
    "gray": (128, 128, 128),
}

_RGB_FUNC = re.compile(r"^rgb\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)$")


def _rgb_components(color):
    if not isinstance(color, str):
        return None
    c = color.strip().lower()
    if c in _NAMED_COLORS:
        return _NAMED_COLORS[c]
    match = _RGB_FUNC.match(c)
    if match:
        return tuple(min(255, int(v)) for v in match.groups())
    if c.startswith("#"):
        c = c[1:]
    if len(c) == 3:
        c = "".join(ch * 2 for ch in c)
    if len(c) != 6:
        return None
    try:
        return tuple(int(c[i : i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return None


def darker(color, k=1.0):
    """Same as d3.rgb(color).darker(k): scale each channel by 0.7 ** k.

    Colors that cannot be parsed are returned unchanged.
    """
    comps = _rgb_components(color)
    if not comps:
        return color
    factor = 0.7 ** k
    dark = tuple(max(0, min(255, round(c * factor))) for c in comps)
    return "#%02x%02x%02x" % dark


class Selection:
    _data_binding = {}

    def __init__(self, elements):
        # elements: list[etree._Element]
        self.elements = elements

    @classmethod
    def _get_data(cls, el):
        binding = cls._data_binding.get(id(el))
        if binding and binding[0] is el:
            return binding[1]
        return None

    @classmethod
    def _set_data(cls, el, value):
        cls._data_binding[id(el)] = (el, value)

    @classmethod
    def _forget(cls, el):
        cls._data_binding.pop(id(el), None)

    def __len__(self):
        return len(self.elements)

    def empty(self):
        return not self.elements

    def append(self, tag, **attrs):
        """Append a child to every element in the selection; returns a new Selection of appended nodes."""
        kids = []
        for el in self.elements:
            child = _el(tag, **attrs)
            el.append(child)
            Selection._set_data(child, Selection._get_data(el))
            kids.append(child)
        return Selection(kids)

    def attr(self, name, value=None):
        """
        Set an attribute on all elements (returns self), or get the first value if value is None.
        """
        attr_name = _normalize_attr_name(name)
        if value is None:
            return self.elements[0].get(attr_name) if self.elements else None
        for idx, el in enumerate(self.elements):
            val = value
            if callable(value):
                val = value(Selection._get_data(el), idx, el)
            if val is None:
                continue
            el.set(attr_name, str(val))
        return self

    def attrs(self, **kvs):
        """Set multiple attributes at once."""
        for k, v in kvs.items():
            self.attr(k, v)
        return self

    def classed(self, names, value=None):
        """Toggle space separated class names, or test the first element when value is None."""
        wanted = names.split()
        if value is None:
            if not self.elements:
                return False
            current = (self.elements[0].get("class") or "").split()
            return all(name in current for name in wanted)
        for idx, el in enumerate(self.elements):
            on = value(Selection._get_data(el), idx, el) if callable(value) else value
            current = (el.get("class") or "").split()
            if on:
                current.extend(name for name in wanted if name not in current)
            else:
                current = [name for name in current if name not in wanted]
            if current:
                el.set("class", " ".join(current))
            else:
                el.attrib.pop("class", None)
        return self

    def datum(self, value=None):
        """Get or set bound data on the selection."""
        if value is None:
            return Selection._get_data(self.elements[0]) if self.elements else None
        for idx, el in enumerate(self.elements):
            current = Selection._get_data(el)
            new_val = value(current, idx, el) if callable(value) else value
            Selection._set_data(el, new_val)
        return self

    def data(self, data_iterable):
        """Bind a sequence of data objects to the selection (lengths must match)."""
        data_list = list(data_iterable)
        if len(data_list) != len(self.elements):
            raise ValueError(
                "Selection.data requires len(data) == number of selected elements"
            )
        for el, datum in zip(self.elements, data_list):
            Selection._set_data(el, datum)
        return self

    def select_all(self, css):
        """Select all matches under each element."""
        sel = _svg_css_selector(css)
        found = []
        for el in self.elements:
            matches = sel(el)
            if not matches:
                continue
            parent_data = Selection._get_data(el)
            for match in matches:
                if Selection._get_data(match) is None:
                    Selection._set_data(match, parent_data)
            found.extend(matches)
        return Selection(found)

    def remove(self):
        """Detach every element from its parent and drop its bound data."""
        for el in self.elements:
            parent = el.getparent()
            if parent is not None:
                parent.remove(el)
            Selection._forget(el)
        return self



class MiniD3SVG:
    def __init__(self, width=800, height=600, viewBox=None, bg=None):
        self.root = _el("svg", width=str(width), height=str(height))
        if viewBox:
            self.root.set("viewBox", viewBox)
        if bg:
            # rect background
            rect = _el("rect", x="0", y="0", width="100%", height="100%", fill=bg)
            self.root.append(rect)

    def select(self, css):
        sel = _svg_css_selector(css)
        found = sel(self.root)
        return Selection(found[:1])

    def select_all(self, css):
        sel = _svg_css_selector(css)
        return Selection(sel(self.root))

    def append(self, tag, **attrs):
        child = _el(tag, **attrs)
        self.root.append(child)
        return Selection([child])

    def to_string(self, pretty=True):
        return etree.tostring(self.root, pretty_print=pretty, encoding="unicode")

    def save(self, path, pretty=True):
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_string(pretty=pretty))


class SVGBubbleRenderer:
    """Rendering capability that keeps one ``circle.bubble`` per entity id.

    The chart controller drives it through ``create``/``set_position``/
    ``set_fill``/``set_stroke``/``animate_radius``/``remove``. Pointer events
    are delivered by calling ``dispatch(id, "mouseover" | "mouseout" | "click")``,
    which runs the listeners registered with ``on``.

    Example
    -------
    >>> renderer = SVGBubbleRenderer(200, 100)
    >>> renderer.create("p1")
    >>> renderer.set_position("p1", 40, 50)
    >>> renderer.set_fill("p1", "#1f77b4")
    >>> renderer.animate_radius("p1", 10, 2000)
    >>> renderer.save("bubbles.svg")
    """

    def __init__(self, width=1000, height=800, bg=None, stroke_width=2):
        self.svg = MiniD3SVG(width=width, height=height, bg=bg)
        self.width = float(width)
        self.height = float(height)
        self._stroke_width = stroke_width
        self._layer = self.svg.append("g", **{"class": "bubbles"})
        self._visuals = {}
        self._listeners = {}

    def _visual(self, node_id):
        try:
            return self._visuals[node_id]
        except KeyError:
            raise KeyError(f"No visual for id {node_id!r}") from None

    def has(self, node_id):
        return node_id in self._visuals

    def ids(self):
        return list(self._visuals)

    def circles(self):
        return self.svg.select_all("circle.bubble")

    def create(self, node_id, radius=0, stroke_width=None):
        if node_id in self._visuals:
            raise ValueError(f"Visual for id {node_id!r} already exists")
        if stroke_width is None:
            stroke_width = self._stroke_width
        sel = self._layer.append(
            "circle", r=radius, stroke_width=stroke_width, data_id=node_id
        )
        sel.classed("bubble dim", True).datum(node_id)
        self._visuals[node_id] = sel
        return sel

    def set_position(self, node_id, x, y):
        self._visual(node_id).attrs(cx=f"{x:.3f}", cy=f"{y:.3f}")

    def set_fill(self, node_id, color):
        self._visual(node_id).attr("fill", color)

    def set_stroke(self, node_id, color):
        self._visual(node_id).attr("stroke", color)

    def animate_radius(self, node_id, radius, duration):
        """Grow/shrink to ``radius`` over ``duration`` milliseconds (SMIL animate)."""
        sel = self._visual(node_id)
        start = sel.attr("r") or "0"
        sel.select_all("animate").remove()
        sel.append(
            "animate",
            attributeName="r",
            **{"from": start},
            to=radius,
            dur=f"{int(duration)}ms",
            fill="freeze",
        )
        sel.attr("r", radius)

    def remove(self, node_id):
        sel = self._visuals.pop(node_id, None)
        self._listeners.pop(node_id, None)
        if sel is not None:
            sel.select_all("animate").remove()
            sel.remove()

    def on(self, node_id, event_type, listener):
        """Register listener(node_id, event_type) on the visual for node_id."""
        self._visual(node_id)
        self._listeners.setdefault(node_id, {})[event_type] = listener

    def dispatch(self, node_id, event_type):
        """Deliver a pointer event to the visual for node_id, if anything listens."""
        datum = self._visual(node_id).datum()
        listener = self._listeners.get(node_id, {}).get(event_type)
        if listener is not None:
            listener(datum, event_type)

    def to_string(self, pretty=True):
        return self.svg.to_string(pretty=pretty)

    def save(self, path, pretty=True):
        self.svg.save(path, pretty=pretty)
