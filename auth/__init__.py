"""auth/ -- Session tokens and access policies for LedgerGuard.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from ledger/. ledger/ imports from auth/, not the other
way around.
"""
