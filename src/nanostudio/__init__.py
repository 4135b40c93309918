"""Nano Studio upload coordinator."""
