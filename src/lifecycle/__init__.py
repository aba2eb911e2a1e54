"""CBAM entry lifecycle — state machines and approval workflows.

Entries move through calculation, validation, verification,
classification change control and regulatory recalculation. Every
service here returns an Outcome for business-rule failures and raises
only for lookups, concurrency and upstream failures.
"""
