"""AGCAL Stash - on-camera calibration workflows, unified loader and CLI."""
