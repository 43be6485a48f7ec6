"""
Shared Layer - Cross-Cutting Concerns
Domain contracts, infrastructure and API utilities
"""
