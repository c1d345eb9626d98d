"""
acl_reconcile — signed ACL distribution and controller reconciliation.

Fetches a signed ACL archive, verifies it against the signer's public key,
compares it with the cards actually held by each access controller, and
produces a diff report that can itself be signed and uploaded.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
