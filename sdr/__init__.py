"""
🏡 WhatsApp SDR Engine
----------------------
Real-estate lead qualification over WhatsApp: paced broadcasts,
a heuristic conversation state machine, lead scoring, Calendly
visit scheduling and Typebot intake, backed by Baserow + Redis.
"""

__version__ = "1.0.0"
