"""Helpers for block-sync: address normalization, block tracking, web3 access."""
