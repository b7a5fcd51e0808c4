"""Operational metrics for tiercache."""
