"""
Marketplace backend package.

Connects users (service requesters) and workers (service providers) through
tickets, services, applications and requests, on top of a document store and
an authentication provider.
"""
