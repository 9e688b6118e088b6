"""Database infrastructure: engine, declarative base, rounding, immutability."""
