"""Import GoCardless (Nordigen) bank feeds into a beancount ledger."""

__version__ = '0.1.0'
