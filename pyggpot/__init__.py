"""
Pyggpot

Coin pot ledger: pots hold gold, silver and bronze coins, and removal
("shaking" the pot) draws coins at random in proportion to what is left.
"""

__version__ = "1.0.0"
