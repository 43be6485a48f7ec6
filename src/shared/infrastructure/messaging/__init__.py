"""
Shared Messaging Infrastructure
In-process event broker for client-facing events
"""
