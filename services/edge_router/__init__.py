"""
Edge Router service
"""
