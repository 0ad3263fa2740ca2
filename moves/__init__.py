"""moves/ -- Storage for the moves resource.

Layer rule: moves/ imports only stdlib, third-party libraries and core/.
"""
