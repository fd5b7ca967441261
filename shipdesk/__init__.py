"""Shipdesk: rate quoting, label purchase and printing for a packing station."""

__version__ = "1.0.0"
