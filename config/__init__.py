# config/__init__.py

# Environment-driven settings live in app_config.py (see .env.example).
