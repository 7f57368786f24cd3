"""
Turns validated image query parameters into an executable query.

    1. Resolve the query feature, from the request image or from a
       feature stored on another document (document store lookup)
    2. Without hashing: one ImageQuery scanning the feature field
    3. With hashing: hash the feature and build a HashedImageQuery with
       one bucket clause per code over '<field>.<KIND>.hash.<ALG>'

Failures to obtain the query feature abort composition before any
clause exists.
"""

import logging
from typing import Optional, Union

from .exceptions import ImageProcessingError, QueryParsingError
from .features import FeatureVector, extract_feature
from .hashing import generate_hashes, hash_field
from .preprocessing import load_image
from .queries import HashedImageQuery, ImageQuery
from .query_parser import ImageQueryParams
from .scoring import SCORE_COMBINE

logger = logging.getLogger(__name__)


class RetrievalComposer:
    """
    Builds image queries.

    Args:
        document_store: Object with get_field(index, doc_type, doc_id,
            routing, field) -> Optional[bytes], used for lookup queries.
            IndexRegistry implements it.
        score_combine: Clause combination policy for hashed queries.
    """

    def __init__(self, document_store=None, score_combine: str = SCORE_COMBINE):
        self.document_store = document_store
        self.score_combine = score_combine

    def resolve_feature(self, params: ImageQueryParams) -> Optional[FeatureVector]:
        """
        Obtain the query feature, or None if a lookup found nothing.

        Raises:
            ImageProcessingError: If the image or the stored feature
                cannot be read.
        """
        kind = params.feature_kind

        if params.image is not None:
            image_np = load_image(params.image)
            try:
                return extract_feature(kind, image_np)
            except Exception as e:
                raise ImageProcessingError(
                    f"Failed to extract {kind.name} from query image: {e}"
                ) from e

        if not params.has_lookup or self.document_store is None:
            return None

        data = self.document_store.get_field(
            params.lookup_index, params.lookup_type, params.lookup_id,
            params.lookup_routing, params.lookup_field,
        )
        if data is None:
            logger.debug(
                f"Lookup miss: [{params.lookup_index}/{params.lookup_type}/"
                f"{params.lookup_id}] field [{params.lookup_field}]"
            )
            return None

        try:
            return FeatureVector.from_bytes(kind, data)
        except ValueError as e:
            raise ImageProcessingError(
                f"Failed to parse stored feature [{params.lookup_field}]: {e}"
            ) from e

    def compose(self, params: ImageQueryParams) -> Union[ImageQuery, HashedImageQuery]:
        """
        Build the query for params.

        Raises:
            QueryParsingError: If no query feature could be obtained.
            ImageProcessingError: If the query image or stored feature is
                unreadable.
        """
        feature = self.resolve_feature(params)
        if feature is None:
            raise QueryParsingError("No feature found for image query")

        field = params.feature_field

        if params.hash_algorithm is None:
            return ImageQuery(field, feature, params.boost)

        codes = generate_hashes(params.hash_algorithm, feature)
        query = HashedImageQuery(
            hash_field(field, params.hash_algorithm), codes, field, feature,
            boost=params.boost, limit=params.limit, combine=self.score_combine,
        )
        logger.debug(f"Composed {query}")
        return query
