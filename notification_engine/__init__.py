"""Notification delivery and scheduled campaign engine."""
