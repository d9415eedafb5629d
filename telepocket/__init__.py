"""
Telepocket - AI classification and suggestion engine for captured notes and links
"""

__version__ = '1.0.0'
