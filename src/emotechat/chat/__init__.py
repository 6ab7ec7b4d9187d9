"""Realtime chat session and emote handling."""
