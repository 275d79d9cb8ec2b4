"""
Vercel entry point for FlowMind Assist API
"""
import sys
import os

# Add parent directory to path
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if parent_dir not in sys.path:
    sys.path.insert(0, parent_dir)

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("LEXICON_CONFIG_PATH", "/tmp/lexicon.yaml")
os.environ.setdefault("EMBEDDING_REFRESH_INTERVAL", "0")  # No background jobs in serverless

from mangum import Mangum
from src.main import app

# Lambda handler for ASGI app. Lifespan is off: the database engine is
# created on the first request and the built-in lexicon is used.
handler = Mangum(app, lifespan="off")
