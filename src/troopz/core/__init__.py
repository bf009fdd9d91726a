"""Core staking ledger, collaborators and ambient services."""
