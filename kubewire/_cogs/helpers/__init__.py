"""
General-purpose helpers not related to the API protocol itself:
type definitions, version detection, logging setup.
"""
