"""Delivery mechanisms exposing the engine: HTTP and websocket API."""
