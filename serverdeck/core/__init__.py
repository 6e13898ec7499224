"""Core — models, services, and configuration for serverdeck."""
