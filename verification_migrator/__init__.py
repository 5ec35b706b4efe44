"""
Contract Verification Migrator

Copies verified-source metadata for smart contracts from one block explorer to
another, both speaking the Etherscan-style verification API.

Supports:
- Flattened single-file and multi-file standard JSON input sources
- Etherscan and Blockscout field dialects
- Asynchronous submission polling with bounded retries
- Bounded parallelism with per-key request spacing
- Best-effort or fail-fast batches with cancellation
"""

__version__ = "0.1.0"
