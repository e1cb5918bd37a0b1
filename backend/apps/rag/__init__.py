"""
RAG (Retrieval Augmented Generation) app.

Provides:
- Owner-scoped vector similarity search (whole corpus, one document, paginated)
- Context assembly and answer synthesis with the configured LLM
"""
