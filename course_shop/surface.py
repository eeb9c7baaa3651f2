"""
In-memory stand-in for the mounted page elements.
"""
import html
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass
class Element:
    """One mounted element; content is always stored as HTML"""
    element_id: str
    classes: Tuple[str, ...] = ()
    attributes: Dict[str, str] = field(default_factory=dict)
    inner_html: str = ""
    visible: bool = True
    scroll_anchor: Optional[int] = None

    def set_text(self, text: str) -> None:
        self.inner_html = html.escape(text)

    def snapshot(self) -> Dict:
        return {
            "classes": list(self.classes),
            "attributes": dict(self.attributes),
            "html": self.inner_html,
            "visible": self.visible,
            "scroll_anchor": self.scroll_anchor,
        }


class Surface:
    """Elements of the currently loaded page, by id and by css class"""

    def __init__(self, elements: Iterable[Element] = ()):
        self._elements: Dict[str, Element] = {}
        for element in elements:
            self.mount(element)

    def mount(self, element: Element) -> Element:
        self._elements[element.element_id] = element
        return element

    def unmount(self, element_id: str) -> None:
        self._elements.pop(element_id, None)

    def get(self, element_id: str) -> Optional[Element]:
        return self._elements.get(element_id)

    def select(self, css_class: str) -> List[Element]:
        return [e for e in self._elements.values() if css_class in e.classes]

    def snapshot(self) -> Dict[str, Dict]:
        return {element_id: e.snapshot() for element_id, e in sorted(self._elements.items())}
