"""
edgestack shared package

Schemas and utilities used by the edge router and the API service.
"""

__version__ = "1.0.0"
