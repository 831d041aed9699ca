"""Command-line client for the NFT staking program."""

__version__ = "0.1.0"
