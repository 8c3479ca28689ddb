'''
Workspace booking backend: recurring availability, slot resolution and
conflict-free reservations for bookable space assets.
'''
__version__ = "0.1.0"
