"""
Paperfolio
Paper-trading portfolio simulator backend.
"""

__version__ = "1.0.0"
