"""
CleanWash campus laundry ordering backend.

Students place clothing pickup orders, workers accept and advance them
through the order status lifecycle, and live views keep both sides current.
"""

__version__ = "1.0.0"
