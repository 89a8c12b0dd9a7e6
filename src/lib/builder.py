"""
Node builder

Turns balanced, quote-encoded qHTML into the Node tree. Each element body is
processed the same way:

    1. top-level q-script blocks of the body run with `this` = the element
    2. the body is split into segments
    3. segments apply in source order: properties set attributes, blocks
       become child nodes, handlers compile onto the element; q-script
       blocks nested in text, html and style blocks run here
    4. once the children exist, the element's queued onReady hooks run

Everything the builder produces is still quote-encoded; tree_decode() turns
a finished tree into plain text in one pass.
"""

import re
from typing import List, Optional

from ..config import AppSettings, appsettings
from ..models.nodes import Element, Node, RawMarkupNode, StyleNode, TextNode, classes_split
from ..models.segments import Segment, SegmentKind
from .context import thisContext_apply
from .handlers import HandlerCache, readyHook_queue, readyHooks_flush
from .log import LOG, componentLogger
from .scanner import (
    handlerTag_is,
    string_decodeIfNeeded,
    tag_parseClasses,
    tagName_isValid,
    uriComponent_encode,
)
from .scripts import ScriptEvaluator
from .segmenter import segments_extract

IGNORED_PROPERTIES = frozenset({"qhtml-component-instance", "qhtml-runtime-template"})
RAW_CONTENT_TAGS = frozenset({"script", "q-painter"})

_HTML_TAG_TOKEN = re.compile(r"^<(\w+)[\s>]")


def styles_merge(existing: Optional[str], incoming: str) -> str:
    """Append a declaration list to an existing style attribute"""
    incoming = incoming.strip()
    if not existing or not existing.strip():
        return incoming
    current = existing.strip()
    if not current.endswith(";"):
        current += ";"
    return f"{current} {incoming}" if incoming else current


def tree_decode(node: Node) -> None:
    """Decode every attribute, class and text value under node in place"""
    for current in node.depth_first():
        if isinstance(current, Element):
            current.classes = classes_split(" ".join(string_decodeIfNeeded(cls) for cls in current.classes))
            current.attributes = {
                name: string_decodeIfNeeded(value) for name, value in current.attributes.items()
            }
        elif isinstance(current, (TextNode, RawMarkupNode, StyleNode)):
            current.value = string_decodeIfNeeded(current.value)


class NodeBuilder:
    """
    Builds element bodies into Node trees

    Args:
        scripts: q-script pass run on each body with the live element
        handlers: Shared handler cache for onX blocks and lifecycle hooks
        settings: wrap_primitive_top_level
    """

    def __init__(
        self,
        scripts: ScriptEvaluator,
        handlers: HandlerCache,
        settings: Optional[AppSettings] = None,
    ) -> None:
        self.scripts = scripts
        self.handlers = handlers
        self.settings = settings or appsettings

    def body_build(self, element: Element, content: str, scripts_done: bool = False) -> Element:
        """
        Build a block body into element.

        Args:
            element: Element receiving attributes and children
            content: Quote-encoded block body
            scripts_done: Top-level q-script blocks were already resolved

        Returns:
            element
        """
        if not scripts_done:
            content = self.scripts.scripts_evaluate(
                content,
                top_level_only=True,
                this=element,
                wrap_primitive_top_level=self.settings.wrap_primitive_top_level,
            )
        for segment in segments_extract(content):
            self.segment_apply(element, segment)
        return element

    def segment_apply(self, element: Element, segment: Segment) -> None:
        kind = segment.kind
        if kind is SegmentKind.PROPERTY:
            self.property_apply(element, segment)
        elif kind is SegmentKind.ELEMENT:
            self.element_build(element, segment)
        elif kind is SegmentKind.TEXT:
            value = self.scripts.scripts_evaluate(segment.content, this=element)
            element.child_append(TextNode(value))
        elif kind is SegmentKind.RAW_MARKUP:
            element.child_append(RawMarkupNode(self.scripts.scripts_evaluate(segment.content, this=element)))
        elif kind is SegmentKind.RAW_STYLE:
            element.attribute_set("style", styles_merge(element.attribute_get("style"), segment.content))
        elif kind is SegmentKind.STYLE_BLOCK:
            content = self.scripts.scripts_evaluate(segment.content, this=element)
            if element.is_root:
                element.child_append(StyleNode(content))
            else:
                element.attribute_set("style", styles_merge(element.attribute_get("style"), content))
        elif kind is SegmentKind.EVENT_BLOCK:
            self.handler_attach(element, segment.tag, segment.content)
        # function-def segments are component actions handled at expansion time

    def handler_attach(self, element: Element, name: str, body: str) -> None:
        handler = self.handlers.handler_make(body, name)
        if handler is not None:
            element.handlers[name.lower()] = handler

    def property_apply(self, element: Element, segment: Segment) -> None:
        """
        Apply one property segment.

        - onReady / onLoad / onLoaded: queued until the children exist
        - onX: { ... }: compiled into a handler
        - other name: { ... }: run now, the result becomes the attribute
        - name: value: q-scripts in the value resolve, then the attribute is set
        `class` always merges into the existing class list.
        """
        name = segment.name
        if not name or name in IGNORED_PROPERTIES:
            return
        if segment.is_ready_lifecycle:
            readyHook_queue(element, segment.content)
            return
        if segment.is_function:
            if handlerTag_is(name):
                self.handler_attach(element, name, segment.content)
                return
            value = self.functionProperty_run(element, name, segment.content)
            if value is None:
                return
        else:
            value = self.scripts.scripts_evaluate(segment.value, this=element).strip()
        if name.lower() == "class":
            element.class_merge(value)
        else:
            element.attribute_set(name, value)

    def functionProperty_run(self, element: Element, name: str, body: str) -> Optional[str]:
        fn = self.handlers.body_compile(body, name)
        if fn is None:
            return None
        restore = thisContext_apply(element)
        try:
            result = fn(element, None)
        except Exception as e:
            componentLogger.error("", f'Property function "{name}" failed: {e}')
            return None
        finally:
            restore()
        if result is None:
            return None
        return uriComponent_encode(str(result))

    def element_build(self, parent: Element, segment: Segment) -> Optional[Element]:
        """
        Build an element segment under parent.

        A comma-separated tag ("ul, li") builds a chain of nested elements
        with the body applied to the innermost one.

        Returns:
            The outermost element built, or None when a tag token is invalid
        """
        tokens = [token.strip() for token in segment.tag.split(",") if token.strip()]
        chain: List[Element] = []
        for token in tokens:
            html_tag = _HTML_TAG_TOKEN.match(token)
            if html_tag:
                token = html_tag.group(1)
            base, classes = tag_parseClasses(token)
            if not tagName_isValid(base):
                componentLogger.error("", f'Skipping invalid element tag token "{token}".')
                return None
            chain.append(Element(tag=base.lower(), classes=list(dict.fromkeys(classes))))
        if not chain:
            return None

        container = parent
        for element in chain:
            container.child_append(element)
            container = element
        innermost = chain[-1]
        if innermost.tag in RAW_CONTENT_TAGS:
            if segment.content:
                innermost.child_append(RawMarkupNode(segment.content))
        else:
            self.body_build(innermost, segment.content)
        for element in reversed(chain):
            readyHooks_flush(element, self.handlers)
        LOG(f"Built <{segment.tag}>", level=3)
        return chain[0]
