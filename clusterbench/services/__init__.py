"""Adapters for the systems an experiment drives and observes."""
