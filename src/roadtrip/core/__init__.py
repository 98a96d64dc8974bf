"""Game state, actions, reducer and session wiring."""
