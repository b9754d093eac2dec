"""Route blueprints for Flask app."""
from .api import api_bp
