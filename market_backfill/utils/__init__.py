"""Utility modules: exceptions, logging, validation and error handling."""
