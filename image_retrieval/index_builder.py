"""
Indexing of images into an ImageIndex.

For an image field named F, every configured feature kind K and hash
algorithm A, a document gets:

    - stored field 'F.K'          the feature's byte representation
    - indexed field 'F.K.hash.A'  one term per hash code (decimal string)

build_index() walks a directory of images and indexes each file under
its file name, like a batch job: unreadable files are logged, counted
and skipped.
"""

import os
import logging
from typing import Iterable, Optional

from .exceptions import ImageProcessingError
from .features import FeatureKind, extract_feature, feature_field
from .hashing import HashAlgorithm, generate_hashes, hash_field
from .index import DEFAULT_DOC_TYPE, Document, ImageIndex
from .preprocessing import load_image

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.webp'}


class ImageIndexer:
    """
    Extracts and indexes image features for one image field.

    Args:
        index: Target index.
        field: Image field name (prefix of all generated fields).
        features: Feature kinds to extract. Defaults to all kinds.
        hashes: Hash algorithms to index. Defaults to all algorithms.
    """

    def __init__(self,
                 index: ImageIndex,
                 field: str = "image",
                 features: Optional[Iterable[FeatureKind]] = None,
                 hashes: Optional[Iterable[HashAlgorithm]] = None):
        self.index = index
        self.field = field
        self.features = list(features) if features is not None else list(FeatureKind)
        self.hashes = list(hashes) if hashes is not None else list(HashAlgorithm)

    def build_document(self, doc_id: str, image,
                       doc_type: str = DEFAULT_DOC_TYPE,
                       routing: Optional[str] = None) -> Document:
        """
        Extract every configured feature of an image into a Document.

        Args:
            image: Encoded image bytes or an RGB uint8 array.

        Raises:
            ImageProcessingError: If the image cannot be decoded or a
                feature cannot be extracted.
        """
        image_np = load_image(image)

        stored = {}
        terms = {}
        for kind in self.features:
            try:
                feature = extract_feature(kind, image_np)
            except Exception as e:
                raise ImageProcessingError(
                    f"Failed to extract {kind.name} from [{doc_id}]: {e}"
                ) from e

            name = feature_field(self.field, kind)
            stored[name] = feature.to_bytes()
            for algorithm in self.hashes:
                codes = generate_hashes(algorithm, feature)
                terms[hash_field(name, algorithm)] = [str(code) for code in codes]

        return Document(doc_id, stored=stored, terms=terms,
                        doc_type=doc_type, routing=routing)

    def index_image(self, doc_id: str, image,
                    doc_type: str = DEFAULT_DOC_TYPE,
                    routing: Optional[str] = None) -> Document:
        """Build a document for an image and add it to the index."""
        document = self.build_document(doc_id, image, doc_type, routing)
        self.index.add(document)
        return document


def build_index(image_dir: str, indexer: ImageIndexer) -> dict:
    """
    Index all images of a directory, then refresh the index.

    Args:
        image_dir: Directory containing images. Each file is indexed
            with its file name as document id.
        indexer: Configured ImageIndexer.

    Returns:
        Dict with 'success', 'processed', 'errors' and 'doc_count'.
    """
    filenames = sorted(
        f for f in os.listdir(image_dir)
        if os.path.splitext(f)[1].lower() in IMAGE_EXTENSIONS
    )

    processed = 0
    errors = 0

    logger.info(f"Indexing {len(filenames)} images from {image_dir}")

    for i, filename in enumerate(filenames):
        filepath = os.path.join(image_dir, filename)
        try:
            with open(filepath, 'rb') as f:
                indexer.index_image(filename, f.read())
            processed += 1
        except (OSError, ImageProcessingError, ValueError) as e:
            logger.warning(f"Failed to index {filename}: {e}")
            errors += 1

        if (i + 1) % 500 == 0:
            logger.info(f"Processed {i + 1}/{len(filenames)} images")

    indexer.index.refresh()

    logger.info(
        f"Index [{indexer.index.name}] built: {processed} images, "
        f"{errors} errors, {indexer.index.doc_count} docs searchable"
    )

    return {
        "success": processed > 0,
        "processed": processed,
        "errors": errors,
        "doc_count": indexer.index.doc_count,
    }
