"""
handlers/ - Presentation Layer
================================
Telegram bot handlers (the dashboard view). Each handler receives updates
from Telegram, delegates to the appropriate Service, and sends the response
back to the operator. No business logic lives here.
"""
