"""
HTTP API for the curation pipeline.
"""
