"""Infrastructure layer for stateless-fhir.

Configuration loading and logging setup. Nothing in the domain layer
imports from here.
"""
