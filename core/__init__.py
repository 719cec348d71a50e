# core/__init__.py
"""
Routing core: event emitter, conversation store and the JibbyService router
"""
