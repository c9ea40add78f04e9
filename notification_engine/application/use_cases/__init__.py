"""Use cases exposed to the API, the live gateway and the scheduler."""
