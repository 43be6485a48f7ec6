"""
Shared Database Infrastructure
Declarative base and async session management
"""
