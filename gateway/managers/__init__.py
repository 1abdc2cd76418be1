"""Managers own the gateway's persistent entities."""
