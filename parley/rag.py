"""Retrieval-augmented generation hook.

The index and the search itself live elsewhere; this module only defines
the interface an input uses to swap its text for retrieved context.
"""

import logging
from abc import ABC, abstractmethod

from .abort import AbortSignal, abortable_run

logger = logging.getLogger("parley.rag")


class Rag(ABC):
    """A searchable retrieval source."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Retrieval source name."""
        ...

    @abstractmethod
    async def search(self, text: str) -> str:
        """Return `text` rewritten with relevant retrieved context."""
        ...


async def search_rag(rag: Rag, text: str, abort_signal: AbortSignal) -> str:
    """Run a retrieval search that the user can interrupt."""
    logger.debug(f"Searching {rag.name} ({len(text)} chars)")
    result = await abortable_run(rag.search(text), abort_signal)
    logger.info(f"Retrieved context from {rag.name}: {len(result)} chars")
    return result
