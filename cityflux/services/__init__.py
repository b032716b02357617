"""
Services layer - the congestion and alerting pipeline.

DESIGN PRINCIPLE:
- Services contain business logic, NOT routes
- Store and messaging handles are injected, defaulting to the Firebase app
- Handlers in event_handlers.py compose the leaf services
"""
