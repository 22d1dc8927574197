"""
Document ingestion.

Turns one queued upload into searchable chunks:
fetch -> scratch file -> per-page extraction -> embed -> upsert
"""
