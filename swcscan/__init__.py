"""SWCSCAN — static vulnerability detection for Solidity ASTs."""

__version__ = "0.3.0"
