"""Quarterly CBAM reporting: eligibility filtering, aggregation and export."""
