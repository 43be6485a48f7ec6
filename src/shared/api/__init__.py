"""
Shared API Layer
"""
