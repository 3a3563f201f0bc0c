"""
API service
"""
