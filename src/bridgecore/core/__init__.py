"""Shared configuration, logging, metrics, address helpers and exceptions."""
