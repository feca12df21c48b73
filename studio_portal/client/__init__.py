"""
Studio Portal: HTTP clients for the portal API.
"""
