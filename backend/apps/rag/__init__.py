"""
RAG (Retrieval Augmented Generation) app.

Provides:
- Embeddings via OpenAI, shared with ingestion
- Document-scoped retrieval from the vector index
- Grounded chat answers and full-document summaries
"""
