"""
API package - cross-cutting HTTP concerns shared by all blueprints.

- middleware: request ids, error envelopes, request logging
"""
