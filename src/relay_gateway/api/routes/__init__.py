"""
HTTP and WebSocket routes.
"""
