"""
HTTP surface over the authorization and audit core.
"""
