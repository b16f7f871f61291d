"""
Paging State Machine — wizard navigation over discovered properties.

Two modes:
    SCROLLING  every discovered property is rendered on one page
    PAGING     properties are partitioned into pages, discovered one page
               at a time as predicates resolve

In PAGING mode a property added by the resolver stays *pending* until the
user moves forward past the last known page; the pending set then becomes
the next page. Pages ahead of the cursor are cached when moving back and
reused when moving forward again, unless a removal resets the flow.

    next    cursor + 1 (cached page, or pending properties as a new page)
    back    cursor - 1
    finish  terminal; no further navigation
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional

from cfe.model import SchemaProperty


class Mode(Enum):
    """Wizard presentation modes."""
    SCROLLING = "SCROLLING"
    PAGING = "PAGING"


class Direction(Enum):
    NEXT = "next"
    BACK = "back"


class PagingStateMachine:
    def __init__(
        self,
        properties: Iterable[SchemaProperty],
        mode: Mode = Mode.SCROLLING,
        order: Optional[Dict[str, int]] = None,
    ):
        self.mode = mode
        self.direction = Direction.NEXT
        self.finished = False
        self._order = dict(order or {})
        self._properties: List[SchemaProperty] = []
        self.add_properties(properties)
        self.pages: List[List[str]] = []
        self.cursor = 0
        if mode == Mode.PAGING:
            self.pages.append([prop.name for prop in self._properties])

    # =========================================================================
    # PROPERTY SET
    # =========================================================================

    @property
    def properties(self) -> List[SchemaProperty]:
        return list(self._properties)

    def add_properties(self, properties: Iterable[SchemaProperty]) -> None:
        known = {prop.name for prop in self._properties}
        for prop in properties:
            if prop.name not in known:
                known.add(prop.name)
                self._properties.append(prop)
        # Schema declaration order, stable for properties the schema never declared.
        fallback = len(self._order)
        self._properties.sort(key=lambda prop: self._order.get(prop.name, fallback))

    def find_property(self, name: str) -> Optional[SchemaProperty]:
        for prop in self._properties:
            if prop.name == name:
                return prop
        return None

    def delete_property(self, name: str) -> None:
        self._properties = [prop for prop in self._properties if prop.name != name]
        for page in self.pages:
            if name in page:
                page.remove(name)
        # The first page always stays; later pages emptied by removal go away.
        self.pages = self.pages[:1] + [page for page in self.pages[1:] if page]
        if self.pages and self.cursor >= len(self.pages):
            self.cursor = len(self.pages) - 1

    def _select(self, names: Iterable[str]) -> List[SchemaProperty]:
        wanted = set(names)
        return [prop for prop in self._properties if prop.name in wanted]

    def pending_properties(self) -> List[SchemaProperty]:
        """Properties discovered but not yet placed on a page."""
        if self.mode != Mode.PAGING:
            return []
        paged = {name for page in self.pages for name in page}
        return [prop for prop in self._properties if prop.name not in paged]

    def current_properties(self) -> List[SchemaProperty]:
        """What is rendered right now."""
        if self.mode != Mode.PAGING:
            return self.properties
        return self._select(self.pages[self.cursor])

    def paging_properties(self) -> List[SchemaProperty]:
        """
        Properties in scope for validation and submission.

        PAGING: every page up to the cursor plus pending properties.
        SCROLLING: everything discovered.
        """
        if self.mode != Mode.PAGING:
            return self.properties
        names = [name for page in self.pages[:self.cursor + 1] for name in page]
        names.extend(prop.name for prop in self.pending_properties())
        return self._select(names)

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    def _has_forward(self) -> bool:
        return self.cursor < len(self.pages) - 1 or len(self.pending_properties()) > 0

    @property
    def can_back(self) -> bool:
        return self.mode == Mode.PAGING and not self.finished and self.cursor > 0

    @property
    def can_next(self) -> bool:
        return self.mode == Mode.PAGING and not self.finished and self._has_forward()

    @property
    def can_finish(self) -> bool:
        if self.finished:
            return False
        return self.mode != Mode.PAGING or not self._has_forward()

    def next(self) -> bool:
        if not self.can_next:
            return False
        self.direction = Direction.NEXT
        if self.cursor == len(self.pages) - 1:
            self.pages.append([prop.name for prop in self.pending_properties()])
        self.cursor += 1
        return True

    def back(self) -> bool:
        if not self.can_back:
            return False
        self.direction = Direction.BACK
        self.cursor -= 1
        return True

    def select(self, direction: Direction) -> List[SchemaProperty]:
        if direction == Direction.BACK:
            self.back()
        else:
            self.next()
        return self.current_properties()

    def reset_flows_allowed(self) -> None:
        """
        Forget cached forward pages after a removal.

        Surviving fields from those pages become pending again, so the next
        forward move rebuilds the page from the store as it is now. A
        finished flow stays finished.
        """
        del self.pages[self.cursor + 1:]

    def mark_as_finished(self) -> None:
        self.finished = True
