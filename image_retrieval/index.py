"""
In-memory segmented index hosting image documents.

Documents are buffered by ImageIndex.add() and become searchable when
refresh() seals the buffer into an immutable Segment (automatically
every MAX_SEGMENT_DOCS documents). Each segment numbers its documents
with local doc ordinals 0..max_doc-1 and keeps:

    - stored binary fields (feature bytes) per doc ordinal
    - an inverted index: field -> term -> sorted doc ordinals

The segment list is replaced, never mutated, so a search that took a
snapshot of it is unaffected by concurrent indexing.

IndexRegistry maps index names to indexes and serves document lookups
(realtime=false semantics: only refreshed documents are visible).
"""

import os
import logging
import threading
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

MAX_SEGMENT_DOCS = int(os.environ.get("MAX_SEGMENT_DOCS", "1000"))

DEFAULT_DOC_TYPE = "_doc"


class Document:
    """A document to index: stored binary fields plus indexed terms."""

    def __init__(self,
                 doc_id: str,
                 stored: Mapping[str, bytes] = None,
                 terms: Mapping[str, Iterable[str]] = None,
                 doc_type: str = DEFAULT_DOC_TYPE,
                 routing: Optional[str] = None):
        self.id = str(doc_id)
        self.doc_type = doc_type
        self.routing = routing
        self.stored = dict(stored or {})
        self.terms = {field: list(values) for field, values in (terms or {}).items()}


class Segment:
    """An immutable, searchable batch of documents."""

    def __init__(self, ordinal: int, documents: List[Document]):
        self.ordinal = ordinal
        self._documents = list(documents)
        self._by_key: Dict[Tuple[str, str], int] = {}
        self._stored: Dict[str, Dict[int, bytes]] = {}
        self._postings: Dict[str, Dict[str, List[int]]] = {}

        for doc, document in enumerate(self._documents):
            self._by_key[(document.doc_type, document.id)] = doc
            for field, value in document.stored.items():
                self._stored.setdefault(field, {})[doc] = bytes(value)
            for field, values in document.terms.items():
                field_postings = self._postings.setdefault(field, {})
                for term in set(values):
                    field_postings.setdefault(str(term), []).append(doc)
        # Docs are visited in increasing order, so postings are already sorted

    @property
    def max_doc(self) -> int:
        return len(self._documents)

    def doc_id(self, doc: int) -> str:
        return self._documents[doc].id

    def document(self, doc: int) -> Document:
        return self._documents[doc]

    def find(self, doc_type: str, doc_id: str) -> Optional[int]:
        return self._by_key.get((doc_type, str(doc_id)))

    def stored_value(self, doc: int, field: str) -> Optional[bytes]:
        return self._stored.get(field, {}).get(doc)

    def docs_with_field(self, field: str) -> List[int]:
        """Sorted ordinals of the docs holding a stored value for field."""
        return sorted(self._stored.get(field, {}))

    def postings(self, field: str, term: str) -> List[int]:
        """Sorted ordinals of the docs indexed with term in field."""
        return self._postings.get(field, {}).get(term, [])

    def __repr__(self):
        return f"Segment(ordinal={self.ordinal}, max_doc={self.max_doc})"


class ImageIndex:
    """A named index made of sealed segments plus a pending buffer."""

    def __init__(self, name: str, max_segment_docs: int = MAX_SEGMENT_DOCS):
        if max_segment_docs < 1:
            raise ValueError("max_segment_docs must be at least 1")
        self.name = name
        self.max_segment_docs = max_segment_docs
        self._segments: Tuple[Segment, ...] = ()
        self._pending: List[Document] = []
        self._keys = set()
        self._lock = threading.Lock()

    @property
    def segments(self) -> Tuple[Segment, ...]:
        """Snapshot of the searchable segments."""
        return self._segments

    @property
    def doc_count(self) -> int:
        return sum(segment.max_doc for segment in self._segments)

    def add(self, document: Document) -> None:
        """
        Buffer a document for indexing.

        Raises:
            ValueError: If a document with the same type and id exists.
        """
        key = (document.doc_type, document.id)
        with self._lock:
            if key in self._keys:
                raise ValueError(
                    f"Document [{document.doc_type}/{document.id}] already "
                    f"exists in index [{self.name}]"
                )
            self._keys.add(key)
            self._pending.append(document)
            if len(self._pending) >= self.max_segment_docs:
                self._flush_locked()

    def refresh(self) -> None:
        """Make all buffered documents searchable."""
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        if not self._pending:
            return
        segment = Segment(len(self._segments), self._pending)
        self._segments = self._segments + (segment,)
        self._pending = []
        logger.info(
            f"Index [{self.name}]: sealed segment {segment.ordinal} "
            f"with {segment.max_doc} docs"
        )

    def get_field(self,
                  doc_type: str,
                  doc_id: str,
                  field: str,
                  routing: Optional[str] = None) -> Optional[bytes]:
        """Stored value of field on a refreshed document, or None."""
        for segment in self._segments:
            doc = segment.find(doc_type, doc_id)
            if doc is None:
                continue
            if routing is not None and segment.document(doc).routing != routing:
                return None
            return segment.stored_value(doc, field)
        return None


class IndexRegistry:
    """Named indexes plus document-store lookups across them."""

    def __init__(self):
        self._indexes: Dict[str, ImageIndex] = {}

    def create_index(self, name: str, **kwargs) -> ImageIndex:
        if name in self._indexes:
            raise ValueError(f"Index [{name}] already exists")
        index = ImageIndex(name, **kwargs)
        self._indexes[name] = index
        return index

    def get_index(self, name: str) -> ImageIndex:
        try:
            return self._indexes[name]
        except KeyError:
            raise KeyError(f"No such index [{name}]") from None

    def __contains__(self, name: str) -> bool:
        return name in self._indexes

    def get_field(self,
                  index: str,
                  doc_type: str,
                  doc_id: str,
                  routing: Optional[str],
                  field: str) -> Optional[bytes]:
        """
        Fetch a stored field of a previously indexed document.

        Returns None when the index, the document or the field is absent.
        """
        target = self._indexes.get(index)
        if target is None:
            logger.debug(f"Lookup on missing index [{index}]")
            return None
        return target.get_field(doc_type, doc_id, field, routing=routing)
