"""Network transports that feed connection events into the session registry."""
