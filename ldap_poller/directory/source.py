"""Contract between the poller and the directory it observes."""

from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import Literal, Protocol

from ldap_poller.models.entry import Entry

SearchScope = Literal["base", "level", "subtree"]


class DirectoryConnection(Protocol):
    """An open, bound connection owned by a single cycle."""

    def search(
        self,
        base: str,
        scope: SearchScope,
        search_filter: str,
        attributes: list[str],
    ) -> Iterator[Entry]:
        """Lazily yield every entry matching the query. Paging is internal."""
        ...


class DirectorySource(Protocol):
    """Something that can hand out directory connections."""

    def connect(self) -> AbstractContextManager[DirectoryConnection]:
        """Open and bind a connection, releasing it when the context exits."""
        ...
