"""PORTA'M tap-in validation service."""
