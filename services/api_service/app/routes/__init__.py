"""
API service routes
"""
