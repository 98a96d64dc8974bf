"""Game master clients, reply parsing and the turn loop."""
