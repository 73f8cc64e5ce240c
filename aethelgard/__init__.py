"""Aethelgard: an interactive fiction service with a request-budgeted turn loop."""
