"""CBAM regulatory validation.

rules.py is a pure evaluator over one entry; service.py writes results
back through the ledger and audits them.
"""
