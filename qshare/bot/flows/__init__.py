"""Conversation flows. Each module exposes ``on_callback`` and/or text-step handlers."""
