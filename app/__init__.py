"""Partner Desk: seller commissions, payment requests and document access."""

__version__ = "1.4.0"
