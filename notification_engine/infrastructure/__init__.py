"""Infrastructure adapters: persistence, transports and realtime delivery."""
