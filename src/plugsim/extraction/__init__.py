from plugsim.extraction.extractor import TypeExtractor, attribute_docstrings
from plugsim.extraction.hints import Intersection, IntersectionAlias, hidden

__all__ = [
    "TypeExtractor",
    "attribute_docstrings",
    "Intersection",
    "IntersectionAlias",
    "hidden",
]
