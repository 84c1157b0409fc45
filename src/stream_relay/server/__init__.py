"""Stream Relay HTTP server.

FastAPI transport over the session engine:
- SSE streaming with resume from the last received sequence
- Conversation status and manual end endpoints
- Session registry owned by the app lifespan
"""
