"""
Host document module.

This module wraps a BeautifulSoup tree and gives the detectors what they need
from a live page: CSS queries, text, containment, a rendering check, stable
element keys and mutation notifications.

Trees loaded from a browser snapshot carry attributes stamped by the snapshot
script (see ``browser.watcher``): a per-element key, a hidden marker and the
bounding-box origin.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Union

from bs4 import BeautifulSoup, Tag

# Set up logger
logger = logging.getLogger(__name__)

# Attributes stamped by the browser snapshot script
KEY_ATTR = "data-tw-key"
HIDDEN_ATTR = "data-tw-hidden"
X_ATTR = "data-tw-x"
Y_ATTR = "data-tw-y"

# Elements that never produce a box
NON_RENDERED_TAGS = {"head", "script", "style", "template", "noscript", "title", "meta", "link"}

# Elements counted for table ids
INDEXED_TAGS = ("table", "pre", "div")


@dataclass
class MutationRecord:
    """
    A change to the document.

    Attributes:
        added_nodes: Elements inserted into the tree
        removed_nodes: Elements taken out of the tree
        snapshot: True when the whole tree was replaced
    """
    added_nodes: List[Tag] = field(default_factory=list)
    removed_nodes: List[Tag] = field(default_factory=list)
    snapshot: bool = False


MutationCallback = Callable[[List[MutationRecord]], None]


def _style_hides(element: Tag) -> bool:
    style = element.get("style") or ""
    compact = style.replace(" ", "").lower()
    return "display:none" in compact or "visibility:hidden" in compact


class HostDocument:
    """
    A mutable document tree with the query surface used by the detectors.
    """

    def __init__(self, html: str = "", url: str = "", parser: str = "lxml"):
        """
        Initialize the document.

        Args:
            html: Initial markup
            url: Address of the page the markup came from
            parser: BeautifulSoup tree builder
        """
        self.parser = parser
        self.url = url or ""
        self.soup = BeautifulSoup(html or "", parser)
        self._subscribers: List[MutationCallback] = []
        self.revision = 0

    # Queries

    @property
    def root(self) -> Union[BeautifulSoup, Tag]:
        return self.soup.body or self.soup

    def select(self, selector: str, root: Optional[Tag] = None) -> List[Tag]:
        """
        Run a CSS selector.

        Args:
            selector: CSS selector (soupsieve syntax)
            root: Element to search under, defaults to the whole document

        Returns:
            Matching elements in document order
        """
        scope = root if root is not None else self.soup
        return scope.select(selector)

    def select_one(self, selector: str, root: Optional[Tag] = None) -> Optional[Tag]:
        scope = root if root is not None else self.soup
        return scope.select_one(selector)

    @staticmethod
    def text_of(element: Optional[Tag]) -> str:
        """Concatenated text of an element and its descendants."""
        if element is None:
            return ""
        return element.get_text()

    @staticmethod
    def contains(ancestor: Tag, element: Tag) -> bool:
        """
        Check whether ``element`` is ``ancestor`` or lies inside it.

        Elements compare by identity; bs4 tags compare equal by markup.
        """
        if ancestor is element:
            return True
        return any(parent is ancestor for parent in element.parents)

    @classmethod
    def overlaps(cls, first: Tag, second: Tag) -> bool:
        """True when either element contains the other."""
        return cls.contains(first, second) or cls.contains(second, first)

    @classmethod
    def overlaps_any(cls, element: Tag, others: Iterable[Tag]) -> bool:
        return any(cls.overlaps(element, other) for other in others)

    def is_attached(self, element: Optional[Tag]) -> bool:
        """Check whether an element is still part of this document."""
        if element is None:
            return False
        for parent in element.parents:
            if parent is self.soup:
                return True
        return False

    def is_rendered(self, element: Optional[Tag]) -> bool:
        """
        Check whether an element is attached and produces a box.

        A snapshot stamp on the element decides when present; the ancestor
        chain is checked for hidden markup in every case.
        """
        if not self.is_attached(element):
            return False
        if element.get(HIDDEN_ATTR) == "1":
            return False
        node = element
        while node is not None and node is not self.soup:
            if node.name in NON_RENDERED_TAGS:
                return False
            if node.has_attr("hidden") or _style_hides(node):
                return False
            node = node.parent
        return True

    def key_for(self, element: Tag) -> str:
        """
        Stable key for an element.

        The snapshot key when the browser stamped one, otherwise a key tied
        to the Python object.
        """
        stamped = element.get(KEY_ATTR)
        if stamped:
            return f"k{stamped}"
        return f"n{id(element)}"

    def resolve(self, key: str, element: Optional[Tag] = None) -> Optional[Tag]:
        """
        Find the current element for a key.

        Args:
            key: Key returned by ``key_for``
            element: Last known element for the key

        Returns:
            The attached element, or None when it left the document
        """
        if element is not None and self.is_attached(element):
            return element
        if key.startswith("k"):
            return self.soup.find(attrs={KEY_ATTR: key[1:]})
        return None

    def position_of(self, element: Tag) -> Dict[str, float]:
        """Overlay anchor from the snapshot stamps, zeros otherwise."""
        position = {"x": 0.0, "y": 0.0}
        for axis, attr in (("x", X_ATTR), ("y", Y_ATTR)):
            value = element.get(attr)
            if value:
                try:
                    position[axis] = float(value)
                except ValueError:
                    logger.debug(f"Ignoring malformed {attr}={value!r}")
        return position

    def index_of(self, element: Tag) -> int:
        """
        Index of an element among all table, pre and div elements.

        Returns:
            The document-order index, or -1 when the element is not one of them
        """
        if element.name not in INDEXED_TAGS:
            return -1
        for index, candidate in enumerate(self.soup.find_all(INDEXED_TAGS)):
            if candidate is element:
                return index
        return -1

    # Mutations

    def subscribe(self, callback: MutationCallback) -> Callable[[], None]:
        """
        Register a mutation callback.

        Args:
            callback: Called with a list of records after every change

        Returns:
            A callable that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def notify(self, records: List[MutationRecord]) -> None:
        """Deliver records to every subscriber."""
        self.revision += 1
        for callback in list(self._subscribers):
            try:
                callback(records)
            except Exception as e:
                logger.error(f"Mutation subscriber failed: {str(e)}", exc_info=True)

    def append_html(self, html: str, parent: Union[str, Tag, None] = None) -> List[Tag]:
        """
        Parse markup and append it to an element.

        Args:
            html: Markup fragment
            parent: Target element or CSS selector, defaults to the body

        Returns:
            The inserted top-level elements
        """
        target = self._target(parent)
        fragment = BeautifulSoup(html, self.parser)
        container = fragment.body or fragment
        added = [node for node in list(container.children) if isinstance(node, Tag)]
        for node in list(container.children):
            target.append(node.extract())
        self.notify([MutationRecord(added_nodes=added)])
        return added

    def remove(self, element: Union[str, Tag]) -> Optional[Tag]:
        """
        Take an element out of the tree.

        Returns:
            The removed element, or None when nothing matched
        """
        target = self.select_one(element) if isinstance(element, str) else element
        if target is None or not self.is_attached(target):
            return None
        target.extract()
        self.notify([MutationRecord(removed_nodes=[target])])
        return target

    def set_text(self, element: Union[str, Tag], text: str) -> None:
        """Replace the children of an element with a text node."""
        target = self._target(element)
        target.clear()
        target.append(text)
        self.notify([MutationRecord()])

    def set_attribute(self, element: Union[str, Tag], name: str, value: Optional[str]) -> None:
        """Set or, when ``value`` is None, delete an attribute."""
        target = self._target(element)
        if value is None:
            if target.has_attr(name):
                del target[name]
        else:
            target[name] = value
        self.notify([MutationRecord()])

    def load(self, html: str, url: Optional[str] = None, notify: bool = False) -> None:
        """
        Replace the whole tree.

        Args:
            html: New markup
            url: New page address, unchanged when None
            notify: Whether subscribers hear about the replacement
        """
        self.soup = BeautifulSoup(html or "", self.parser)
        if url is not None:
            self.url = url
        if notify:
            self.notify([MutationRecord(added_nodes=[self.root], snapshot=True)])
        else:
            self.revision += 1

    def _target(self, element: Union[str, Tag, None]) -> Tag:
        if element is None:
            return self.root
        if isinstance(element, str):
            found = self.select_one(element)
            if found is None:
                raise LookupError(f"No element matches {element!r}")
            return found
        return element
