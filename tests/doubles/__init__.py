"""Dobles de prueba."""
