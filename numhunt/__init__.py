"""Aliquot sequence tools, Lucas-Lehmer testing and resumable Mersenne prime searches."""

__version__ = "0.1.0"