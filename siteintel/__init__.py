"""
Site Intel — website analysis pipeline for prospect discovery and site audits.
"""

__version__ = "1.0.0"
