"""wagateway - HTTP gateway for a single WhatsApp session."""

__version__ = "0.1.0"
__logo__ = "📱"
