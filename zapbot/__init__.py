"""zapbot - resilient WhatsApp sticker and assistant bot."""

__version__ = "0.1.0"
__logo__ = "🤖"
