"""Shared configuration, logging and HTTP helpers for Dream Log services."""
