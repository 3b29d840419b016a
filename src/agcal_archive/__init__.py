"""AGCAL Archive - entry table, compression envelope, stash header and multi-slot container."""
