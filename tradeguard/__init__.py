"""TradeGuard — risk-integrity core for a crypto trading dashboard.

Two components share one portfolio data model: a reconciliation engine
that audits portfolio aggregates against raw positions, and a position
lifecycle manager that decides when open positions should exit.
"""

__version__ = "0.1.0"
