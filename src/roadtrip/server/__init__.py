"""Hosted request handlers: game master, TTS and geocoding."""
