"""
Vector index adapter (Qdrant).
"""
