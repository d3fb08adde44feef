"""
Before Send - tone check and rewrite service for draft messages
"""
__version__ = "0.1.0"
