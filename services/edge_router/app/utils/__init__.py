"""
Edge router utilities: upstream proxying, websocket bridging and static assets
"""
