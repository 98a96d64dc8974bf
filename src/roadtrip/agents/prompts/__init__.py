"""Prompt templates for the game master."""
