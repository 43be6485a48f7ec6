"""
Shared Cache Infrastructure
Redis-based caching and atomic markers
"""
