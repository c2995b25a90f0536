"""Core mail functionality: protocol clients and data models."""
