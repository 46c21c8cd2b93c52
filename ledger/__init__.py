"""ledger/ -- Category, group and user lifecycle rules plus their persistence.

Planners (categories, groups, users) are pure functions over snapshots.
store.py is the only module that talks to the database; service.py wires
authorization, planning and commits together.

Layer rule: ledger/ may import from auth/ and core/. Neither imports ledger/.
"""
