"""
Concept-related enums.

Defines the fixed concept taxonomy, CEFR difficulty levels, duplicate match
types and tag provenance.
"""

from enum import Enum


class ConceptCategory(str, Enum):
    """Concept taxonomy. Fixed to two categories."""

    GRAMMAR = "grammar"  # Sentence structures, conjugation patterns, case usage
    VOCABULARY = "vocabulary"  # Word groups, expressions, idioms


class DifficultyLevel(str, Enum):
    """CEFR proficiency levels, easiest first."""

    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"


class DuplicateMatchType(str, Enum):
    """How an existing concept's name matched a candidate name."""

    EXACT = "exact"  # Identical after trimming
    CASE_INSENSITIVE = "case_insensitive"  # Same name, different casing


class TagSource(str, Enum):
    """Whether a suggested tag already exists in the tag vocabulary."""

    EXISTING = "existing"
    NEW = "new"
