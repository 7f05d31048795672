"""Two-party signaling and relay hub for pair-programming sessions."""
