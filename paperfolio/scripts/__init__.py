"""
Paperfolio operational scripts.
"""
