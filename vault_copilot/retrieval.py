"""
Hybrid Retrieval
================
Vector + BM25 fusion over the vault index with a similarity floor and a
maximum number of returned chunks.
"""

import logging
from typing import List

from llama_index.core import VectorStoreIndex
from llama_index.core.base.base_retriever import BaseRetriever
from llama_index.core.retrievers import QueryFusionRetriever
from llama_index.core.schema import BaseNode, NodeWithScore
from llama_index.retrievers.bm25 import BM25Retriever

from vault_copilot.constants import MIN_SIMILARITY_SCORE

logger = logging.getLogger("vault_copilot.retrieval")


class HybridRetriever:
    """Fusion retriever with post-filtering.

    Args:
        fusion_retriever: Anything with ``retrieve(query) -> List[NodeWithScore]``.
        min_similarity_score: Chunks scoring below this are dropped.
        max_k: Maximum number of chunks returned.
    """

    def __init__(
        self,
        fusion_retriever,
        min_similarity_score: float = MIN_SIMILARITY_SCORE,
        max_k: int = 3,
    ):
        self.fusion_retriever = fusion_retriever
        self.min_similarity_score = min_similarity_score
        self.max_k = max_k

    def retrieve(self, query: str) -> List[NodeWithScore]:
        results = self.fusion_retriever.retrieve(query)
        kept = [r for r in results if (r.score or 0.0) >= self.min_similarity_score]
        kept.sort(key=lambda r: r.score or 0.0, reverse=True)
        logger.debug(
            "Retrieved %d chunks, %d above floor %.3f",
            len(results), len(kept), self.min_similarity_score,
        )
        return kept[: self.max_k]


def create_hybrid_retriever(
    index: VectorStoreIndex,
    nodes: List[BaseNode],
    max_k: int,
    min_similarity_score: float = MIN_SIMILARITY_SCORE,
) -> HybridRetriever:
    """Combine a vector retriever and BM25 with reciprocal rank fusion.

    Args:
        index: The vault vector index.
        nodes: Indexed nodes, needed for BM25.
        max_k: Maximum number of chunks per query.
        min_similarity_score: Fused-score floor.

    Returns:
        HybridRetriever wrapping a ``QueryFusionRetriever``.
    """
    top_k = max(max_k * 2, 1)
    retrievers: List[BaseRetriever] = [index.as_retriever(similarity_top_k=top_k)]

    if nodes:
        retrievers.append(BM25Retriever.from_defaults(nodes=nodes, similarity_top_k=top_k))
        mode_label = "2-way fusion (Vector+BM25)"
    else:
        mode_label = "Vector search only"

    fusion_retriever = QueryFusionRetriever(
        retrievers,
        similarity_top_k=top_k,
        num_queries=1,
        mode="reciprocal_rerank",
        use_async=False,
    )
    logger.info("%s, max %d chunks", mode_label, max_k)
    return HybridRetriever(fusion_retriever, min_similarity_score, max_k)
