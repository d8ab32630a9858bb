"""
API routers for the Canvass Service.
"""
