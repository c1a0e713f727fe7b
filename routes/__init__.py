"""
Flask blueprints for the OSINT Copilot API.
"""

from flask import Blueprint

# Create blueprints
conversations_bp = Blueprint('conversations', __name__)
# Import routes to register them
from . import conversations
