"""
Fleet Billing Kernel

Persistence, lifecycle and ledger services for weekly driver billing:
- Billing periods with an atomic PROCESSING lock
- Append-only driver balance movements
- Guarantee deposit accounts
- Consumable billing facts (km excess, tickets, penalties, fractional dues)
"""

__version__ = "0.1.0"
