"""
Vercel serverless entry: expose the Flask gateway for Vercel deploy.
All routes are handled by the backend_server app.
"""
import sys
from pathlib import Path

root = Path(__file__).resolve().parent.parent
if str(root / "src") not in sys.path:
    sys.path.insert(0, str(root / "src"))

from backend_server import configure_logging, create_app

configure_logging()
app = create_app()
