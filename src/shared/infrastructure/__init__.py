"""
Shared Infrastructure Layer
Database, cache, security, messaging, and observability
"""
