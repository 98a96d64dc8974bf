"""I Spy Road Trip: a voice-driven, GPS-aware trivia game hosted by Professor Jones."""

__version__ = "1.0.0"
