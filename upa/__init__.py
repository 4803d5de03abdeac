"""
Uniform-Price Auction (UPA)

A timed, multi-unit sealed-bid auction server:
- Bid ledger with last-value-wins semantics
- Uniform-price multi-unit clearing
- Whole-team budget discipline (void rule)
- Append-only game history
"""

__version__ = "0.1.0"
