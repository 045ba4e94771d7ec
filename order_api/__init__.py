"""
                Cafe Order API

Ordering backend for a café/restaurant: orders, payment initiation
(cash, bank transfer by QR, internal balance) and bank gateway
callback reconciliation.
"""

__version__ = "1.0.0"
