"""
Shared Security Infrastructure
Credential encryption
"""
