"""
Document upload, preview and deletion endpoints.
"""
