"""
Shared Domain Layer
Pure domain contracts with no framework dependencies
"""
