"""
Semantic Modeling Module
"""
from .semantic import SemanticModel, SemanticModelBuilder, build_semantic_model

__all__ = ["SemanticModel", "SemanticModelBuilder", "build_semantic_model"]
