"""
Image search engine facade.

Wires the pipeline together for callers that just want hits:

    request body -> parse_image_query -> RetrievalComposer.compose
                 -> IndexSearcher.search -> ranked hits

Lookup requests without an explicit "index" reuse features stored in
the index being searched.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from .composer import RetrievalComposer
from .index import IndexRegistry
from .query_parser import parse_image_query
from .scoring import SCORE_COMBINE
from .search import SEARCH_MAX_WORKERS, SEARCH_TOP_K, IndexSearcher

logger = logging.getLogger(__name__)


class ImageSearchEngine:
    """
    Runs image queries against the indexes of a registry.

    Args:
        registry: Indexes to search; also serves feature lookups.
        max_workers: Threads used to evaluate segments in parallel.
        score_combine: Clause combination policy for hashed queries.
    """

    def __init__(self,
                 registry: IndexRegistry,
                 max_workers: int = SEARCH_MAX_WORKERS,
                 score_combine: str = SCORE_COMBINE):
        self.registry = registry
        self.max_workers = max_workers
        self.composer = RetrievalComposer(registry, score_combine=score_combine)

    def search(self,
               index_name: str,
               body: Mapping[str, Any],
               top_k: Optional[int] = SEARCH_TOP_K) -> List[Dict[str, Any]]:
        """
        Search an index with an image query request.

        Args:
            index_name: Index to search.
            body: Image query request, see query_parser.
            top_k: Maximum number of hits, or None for all.

        Returns:
            List of hit dicts sorted by score: id, score, segment, doc.

        Raises:
            QueryParsingError: Malformed request or no query feature.
            ImageProcessingError: Unreadable query image or stored feature.
            KeyError: Unknown index.
        """
        params = parse_image_query(body, default_index=index_name)
        index = self.registry.get_index(index_name)

        query = self.composer.compose(params)
        logger.debug(f"Searching [{index_name}] with {query}")

        searcher = IndexSearcher(index, max_workers=self.max_workers)
        return searcher.search(query, top_k=top_k)
