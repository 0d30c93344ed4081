"""
OSM API 0.6 XML documents: tag codec, element parsing and request bodies.

Responses are parsed with lxml and attributes are read by name, so the
attribute order the API happens to send on <node>/<way>/<changeset> never
matters. Request bodies are string-built.
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import lxml.etree

from ..core.models import Node, Way, Changeset
from ..utils.time import parse_osm_timestamp

# Ampersand must stay first.
_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)

# Raw whitespace inside an attribute value is normalised to a space by any
# XML parser, so it goes out as character references.
_WHITESPACE_REFS = (
    ("\r", "&#13;"),
    ("\n", "&#10;"),
    ("\t", "&#9;"),
)

def escape_xml(value: str) -> str:
    s = str(value)
    for raw, entity in _ESCAPES + _WHITESPACE_REFS:
        s = s.replace(raw, entity)
    return s

def format_coord(value: float) -> str:
    """Shortest round-trip text for a coordinate, never in scientific notation."""
    text = repr(float(value))
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    if text.endswith(".0"):
        text = text[:-2]
    return text

def encode_tags(tags: Dict[str, str], indent: str = "    ") -> str:
    """One <tag k=".." v=".."/> line per pair, in insertion order."""
    return "\n".join(
        f'{indent}<tag k="{escape_xml(k)}" v="{escape_xml(v)}"/>' for k, v in tags.items()
    )

def _root(xml: str) -> lxml.etree._Element:
    data = xml.encode("utf-8") if isinstance(xml, str) else xml
    try:
        return lxml.etree.fromstring(data)
    except lxml.etree.XMLSyntaxError as e:
        raise ValueError(f"malformed OSM XML: {e}") from e

def _tags_of(tag_elements: Iterable[lxml.etree._Element]) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    for tag in tag_elements:
        k = tag.get("k")
        if k is not None:
            tags[k] = tag.get("v", "")
    return tags

def decode_tags(fragment: str) -> Dict[str, str]:
    """Tags of a fragment of <tag/> lines (or of the element that wraps them)."""
    if not fragment or not fragment.strip():
        return {}
    return _tags_of(_root(f"<tags>{fragment}</tags>").iter("tag"))

def _find(xml: str, name: str) -> lxml.etree._Element:
    element = next(_root(xml).iter(name), None)
    if element is not None:
        return element
    raise ValueError(f"no <{name}> element in response")

def _required(element: lxml.etree._Element, name: str) -> str:
    value = element.get(name)
    if value is None:
        raise ValueError(f"<{element.tag}> is missing the {name} attribute")
    return value

def _int_attr(element: lxml.etree._Element, name: str) -> Optional[int]:
    value = element.get(name)
    return int(value) if value else None

def parse_node(xml: str) -> Node:
    node = _find(xml, "node")
    return Node(
        id=int(_required(node, "id")),
        version=int(_required(node, "version")),
        lat=float(_required(node, "lat")),
        lon=float(_required(node, "lon")),
        changeset=_int_attr(node, "changeset"),
        tags=_tags_of(node.findall("tag")),
    )

def parse_way(xml: str) -> Way:
    way = _find(xml, "way")
    return Way(
        id=int(_required(way, "id")),
        version=int(_required(way, "version")),
        changeset=_int_attr(way, "changeset"),
        node_refs=[int(_required(nd, "ref")) for nd in way.findall("nd")],
        tags=_tags_of(way.findall("tag")),
    )

def parse_changeset(xml: str) -> Changeset:
    changeset = _find(xml, "changeset")
    tags = _tags_of(changeset.findall("tag"))
    return Changeset(
        id=int(_required(changeset, "id")),
        comment=tags.get("comment", ""),
        created_at=parse_osm_timestamp(changeset.get("created_at")),
        closed_at=parse_osm_timestamp(changeset.get("closed_at")),
        tags=tags,
    )

def _document(generator: str, inner: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<osm version="0.6" generator="{escape_xml(generator)}">\n'
        f"{inner}\n"
        "</osm>"
    )

def changeset_document(comment: str, created_by: str, hashtags: str, generator: str) -> str:
    tags = encode_tags({"created_by": created_by, "comment": comment, "hashtags": hashtags})
    return _document(generator, f"  <changeset>\n{tags}\n  </changeset>")

def node_document(node: Node, changeset_id: int, generator: str,
                  node_id: Optional[int] = None, version: Optional[int] = None) -> str:
    attrs = ""
    if node_id is not None:
        attrs += f' id="{int(node_id)}"'
    if version is not None:
        attrs += f' version="{int(version)}"'
    attrs += f' changeset="{int(changeset_id)}" lat="{format_coord(node.lat)}" lon="{format_coord(node.lon)}"'
    return _document(generator, f"  <node{attrs}>\n{encode_tags(node.tags)}\n  </node>")

def _node_refs(refs: Iterable[int], indent: str = "    ") -> List[str]:
    return [f'{indent}<nd ref="{int(ref)}"/>' for ref in refs]

def way_document(way_id: int, way: Way, version: int, changeset_id: int, generator: str) -> str:
    lines = _node_refs(way.node_refs)
    if way.tags:
        lines.append(encode_tags(way.tags))
    head = f'  <way id="{int(way_id)}" version="{int(version)}" changeset="{int(changeset_id)}">'
    return _document(generator, "\n".join([head] + lines + ["  </way>"]))
