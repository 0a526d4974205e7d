"""Services package for LLM access and the concept extraction pipeline."""
