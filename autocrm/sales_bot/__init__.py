"""
Sales Bot Module

WhatsApp sales assistant for the dealership CRM.

Features:
- Retrieval-augmented replies over the car stock and knowledge base
- Rule-based escalation to a human manager
- Structured lead updates parsed from the model reply
- Scheduled and manual follow-ups for silent leads
"""
from flask import Blueprint

sales_bot_bp = Blueprint(
    'sales_bot',
    __name__,
)

# Import routes to register them
from . import routes  # noqa: E402, F401
