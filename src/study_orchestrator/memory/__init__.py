from .classifier import MemoryClassifier
from .context_assembler import AssembledContext, ContextAssembler
from .embedding import EmbeddingService, cosine_similarity
from .models import (
    ClassificationResult,
    MemoryPriority,
    MemoryRecord,
    MemoryScope,
    RetentionClass,
    RetrievedMemory,
)
from .retriever import ContextLevel, SemanticRetriever, apply_context_level
from .store import SQLiteMemoryStore

__all__ = [
    "AssembledContext",
    "ClassificationResult",
    "ContextAssembler",
    "ContextLevel",
    "EmbeddingService",
    "MemoryClassifier",
    "MemoryPriority",
    "MemoryRecord",
    "MemoryScope",
    "RetentionClass",
    "RetrievedMemory",
    "SQLiteMemoryStore",
    "SemanticRetriever",
    "apply_context_level",
    "cosine_similarity",
]
