"""Operator tools for the tracker datastore."""
