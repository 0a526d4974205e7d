"""
Prompt templates for the concept extraction pipeline.

Templates are plain str.format templates. Literal braces in the JSON
response schemas are doubled.

Prompts:
- EXTRACTION_PROMPT: Extract 3-10 grammar/vocabulary concepts from course content
- SIMILARITY_PROMPT: Score one candidate against a subset of existing concepts
"""

from conceptlab.enums import ConceptCategory, DifficultyLevel

_categories = "|".join(c.value for c in ConceptCategory)
_levels = "|".join(level.value for level in DifficultyLevel)
_levels_list = ", ".join(level.value for level in DifficultyLevel)

CONCEPT_EXTRACTION_SYSTEM_PROMPT = (
    "You are a Polish language learning assistant specializing in extracting "
    "and organizing language concepts from learning materials."
)

SIMILARITY_SYSTEM_PROMPT = (
    "You are tasked with identifying similarity between language concepts "
    "for a Polish learning application."
)

FREE_TEXT_SYSTEM_PROMPT = (
    "You are an expert Polish language learning assistant. Analyze the given "
    "text and provide structured, helpful insights."
)

EXTRACTION_PROMPT = f"""You are tasked with extracting language learning concepts from Polish language course materials.

## COURSE CONTENT:
- Keywords: {{keywords}}
- New Vocabulary Words: {{new_words}}
- Notes: {{notes}}
- Practice Content: {{practice}}
{{homework_line}}
## TASK:
Extract clearly defined language concepts from the above content, following these guidelines:

1. Categorize each concept as either GRAMMAR or VOCABULARY.
   - GRAMMAR: Sentence structures, verb conjugation patterns, case usage, etc.
   - VOCABULARY: Word groups, expressions, idioms, colloquialisms, etc.

2. For each concept:
   - Provide a clear, descriptive name
   - Write a concise but comprehensive description
   - Include 2-4 examples from the content
   - Note where in the content you found this concept
   - Assign a confidence score (0.0-1.0) indicating how clearly this concept is present
   - Suggest a difficulty level ({_levels_list})
   - Suggest 2-5 short hyphenated tags (e.g. "time-expressions", "locative-case")

## EXAMPLES:

Good GRAMMAR concept:
{{{{
  "name": "Locative Case with Time Expressions",
  "category": "{ConceptCategory.GRAMMAR.value}",
  "description": "Using the locative case with preposition 'po' to express time in informal format",
  "examples": ["kwadrans po ósmej", "dwadzieścia po dziesiątej"],
  "sourceContent": "Found in practice section discussing time expressions",
  "confidence": 0.95,
  "suggestedDifficulty": "A2",
  "suggestedTags": [{{{{"tag": "locative-case", "source": "new", "confidence": 0.9}}}}]
}}}}

Good VOCABULARY concept:
{{{{
  "name": "Time-Related Vocabulary",
  "category": "{ConceptCategory.VOCABULARY.value}",
  "description": "Essential vocabulary for telling time in Polish",
  "examples": ["kwadrans", "wpół do", "za pięć"],
  "sourceContent": "From notes section on telling time",
  "confidence": 0.9,
  "suggestedDifficulty": "A1",
  "suggestedTags": [{{{{"tag": "time-expressions", "source": "new", "confidence": 0.9}}}}]
}}}}

## RESPONSE FORMAT:
Respond strictly with a JSON object containing an array of concepts:

{{{{
  "concepts": [
    {{{{
      "name": "string",
      "category": "{_categories}",
      "description": "string",
      "examples": ["string", "string"],
      "sourceContent": "string",
      "confidence": 0.0,
      "suggestedDifficulty": "{_levels}",
      "suggestedTags": [{{{{"tag": "string", "source": "existing|new", "confidence": 0.0}}}}]
    }}}}
  ]
}}}}

Extract at least 3 concepts but no more than 10 concepts, focusing on the most important and clearly defined ones.
"""

SIMILARITY_PROMPT = """You are tasked with identifying similarity between a newly extracted language concept and existing concepts in our database.

## NEWLY EXTRACTED CONCEPT:
{extracted_concept}

## EXISTING CONCEPTS:
{existing_concepts}

## TASK:
Compare the newly extracted concept with the existing concepts and identify any that are semantically similar. Consider:

1. Similar names or synonymous terms
2. Similar descriptions or overlapping content
3. Matching categories (grammar or vocabulary)
4. Similar difficulty levels

For each similar concept:
- Assign a similarity score (0.0-1.0) for content similarity
- Assign a merge score (0.0-1.0) for how advisable merging the two would be
- Identify conflicting fields that would need resolution
- Suggest how to merge the descriptions

## SIMILARITY GUIDELINES:
- 0.9-1.0: Nearly identical concepts
- 0.7-0.8: Highly similar concepts with minor differences
- 0.5-0.6: Moderately similar concepts with some overlap
- 0.3-0.4: Somewhat similar concepts with significant differences
- 0.0-0.2: Largely different concepts

## RESPONSE FORMAT:
Respond strictly with a JSON object containing an array of matches:

{{
  "matches": [
    {{
      "conceptId": "string",
      "name": "string",
      "similarity": 0.0,
      "category": "grammar|vocabulary",
      "description": "string",
      "mergeScore": 0.0,
      "mergeSuggestion": {{
        "reason": "string",
        "conflictingFields": ["string"],
        "suggestedMergedDescription": "string"
      }}
    }}
  ]
}}

Return only concepts with similarity score >= {min_score}, limited to the top {max_matches} most similar concepts. If no similar concepts are found, return an empty array.
"""
