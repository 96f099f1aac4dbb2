"""Raffle — commit-reveal claim and settlement protocol.

A campaign owner commits to a fixed set of outcomes via a Merkle root.
Participants claim opaque serial ids before the deadline. After the
deadline each participant reveals a secret, and the settlement engine
verifies the reveal against the root and settles it exactly once.
"""

__version__ = "0.1.0"
