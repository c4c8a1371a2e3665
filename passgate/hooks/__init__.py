"""Announce hooks and the chain that runs them.

  - protocol.py  — Hook protocol
  - factory.py   — name → hook construction, resolved once at startup
  - chain.py     — ordered execution, first ClientError wins
  - peerlimit.py — one peer per (passkey, torrent)
"""
