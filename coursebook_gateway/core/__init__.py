"""Core types shared across the gateway: error taxonomy."""
