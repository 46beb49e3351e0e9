"""Periodic grid operators and the concentration field container."""
