"""
image_retrieval: Content-based image retrieval over a segmented index.

Finds documents whose stored image features are most similar to a query
image. Candidates come from hash buckets (bit sampling or LSH) in an
inverted index and are re-ranked by exact feature distance; without
hashing, every stored feature is compared.

Modules:
    engine             ImageSearchEngine facade
    query_parser       Request validation
    composer           Builds exhaustive or hashed queries
    queries            ImageQuery and HashedImageQuery
    scorers            Exhaustive and hash-bucket scorers
    score_cache        Per-segment score cache and query-wide limit counter
    search             Disjunction scorer and IndexSearcher
    scoring            Distance-to-score mapping, combination, ranking
    features           Feature kinds, FeatureVector and its byte format
    hashing            Bit sampling and LSH hash codes
    histograms         Color histogram and color layout extraction
    shape_descriptors  Edge histogram and contour shape extraction
    preprocessing      Image decoding, scaling and normalization
    index              In-memory segmented index and document lookups
    index_builder      Feature extraction into index documents
"""

__version__ = "1.0.0"
