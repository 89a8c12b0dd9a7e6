"""
Segmenter data models

A Segment is one top-level item found in the body of a qHTML block. Segments
are produced by segments_extract() and consumed immediately by the node
builder; they are never stored.
"""

from dataclasses import dataclass
from enum import Enum


class SegmentKind(Enum):
    """Kinds of top-level items in a qHTML block body"""
    PROPERTY = "property"          # name: value;  or  name: { body }
    ELEMENT = "element"            # tag { ... }
    TEXT = "text"                  # text { ... }  or a bare "quoted string"
    RAW_MARKUP = "html"            # html { <b>raw</b> }
    RAW_STYLE = "css"              # css { color: red; }
    STYLE_BLOCK = "style-block"    # style { ... }
    EVENT_BLOCK = "event-block"    # onClick { ... }
    FUNCTION_DEF = "function-def"  # function name(params) { ... }


@dataclass
class Segment:
    """
    One segment of a block body

    Attributes:
        kind: SegmentKind of this segment
        tag: Tag token for blocks ("div.card", "html", "onClick"), property name for PROPERTY
        content: Block inner text, or property value
        is_function: PROPERTY whose value was a { body } to run rather than a literal
        is_ready_lifecycle: PROPERTY holding an onReady/onLoad/onLoaded body

    Example:
        For "div.card { color: red; }" the segmenter yields
        Segment(kind=SegmentKind.ELEMENT, tag="div.card", content="color: red;")
    """
    kind: SegmentKind
    tag: str = ""
    content: str = ""
    is_function: bool = False
    is_ready_lifecycle: bool = False

    @property
    def name(self) -> str:
        """Property name (alias of tag for PROPERTY segments)"""
        return self.tag

    @property
    def value(self) -> str:
        """Property value (alias of content for PROPERTY segments)"""
        return self.content
