# web_interface/__init__.py

# FastAPI application, HTTP routes and the WebSocket event channel.
