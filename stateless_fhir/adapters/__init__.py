"""Adapters layer for stateless-fhir.

This module contains input adapters that interface with external document
stores. Adapters implement the DocumentSourcePort defined in the domain layer
and pass payloads through untouched.
"""
