"""Real-time market data distribution gateway."""
