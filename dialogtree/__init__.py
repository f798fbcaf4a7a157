"""AI chat client: streamed answers, Redis chit-chat memory, dialog tables and a small web server."""

__version__ = "0.1.0"