"""Credit ledger and reverse geocoding."""
