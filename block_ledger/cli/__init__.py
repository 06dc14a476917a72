"""
BlockLedger - CLI Package
===========================
Command line interface (``blockledger``).
"""
