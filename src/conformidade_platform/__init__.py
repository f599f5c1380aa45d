"""Conformidade platform: back-office API for a mortgage-brokerage agency."""
