"""
Edge router routes
"""
